# storefront/auth/routes.py
import hashlib
import hmac
import secrets
import uuid
from datetime import datetime, timedelta
from urllib.parse import urlencode

from flask import current_app, g, redirect, request
from flask_jwt_extended import create_access_token
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer
from sqlalchemy import or_
from werkzeug.security import check_password_hash, generate_password_hash

from ..errors import ApiError, BadRequest, Conflict, Forbidden, NotFound, Unauthorized, UpstreamError
from ..extensions import db, limiter
from ..model import Order, Product, RefreshToken, Review, User
from ..schemas import (
    DeleteUserRequest,
    ForgotPasswordRequest,
    LoginRequest,
    LogoutRequest,
    RefreshRequest,
    RegisterRequest,
    ResetPasswordRequest,
    UpdatePasswordRequest,
    load,
)
from ..services.google_oauth import get_google
from ..services.mailer import get_mailer
from ..utils.api import ok
from ..utils.decorators import admin_required, login_required, optional_user, verified_required
from ..utils.paging import page_args, page_meta
from . import bp

VERIFY_SALT = "verify-email"
VERIFY_MAX_AGE = 24 * 3600
RESET_TTL = timedelta(hours=1)
OAUTH_STATE_COOKIE = "oauth_state"

login_limit = limiter.shared_limit(
    "16 per 15 minutes", scope="login",
    error_message="Too many login attempts, please try again later",
)
password_limit = limiter.shared_limit(
    "16 per hour", scope="password-reset",
    error_message="Too many password reset attempts, please try again later",
)


# --- helpers ---------------------------------------------------------------

def _issue_tokens(user: User):
    """Create an access token and persist a fresh single-use refresh token."""
    access_token = create_access_token(identity=str(user.id))
    refresh_token_str = str(uuid.uuid4())
    db.session.add(RefreshToken(
        user_id=user.id,
        token=refresh_token_str,
        expires_at=datetime.utcnow() + timedelta(days=current_app.config["REFRESH_TOKEN_DAYS"]),
    ))
    return access_token, refresh_token_str


def _token_payload(user: User):
    access_token, refresh_token = _issue_tokens(user)
    db.session.commit()
    return {"access_token": access_token, "refresh_token": refresh_token, "user": user.as_dict()}


def _serializer():
    return URLSafeTimedSerializer(current_app.config["SECRET_KEY"], salt=VERIFY_SALT)


def _hash_token(token: str) -> str:
    return hashlib.sha256(token.encode()).hexdigest()


def _authenticate(email: str, password: str) -> User:
    user = User.query.filter_by(email=email).first()
    if not user:
        raise Unauthorized("Invalid email or password")
    if not user.password_hash:
        raise BadRequest("This account uses Google sign-in. Please continue with Google.")
    if not check_password_hash(user.password_hash, password):
        raise Unauthorized("Invalid email or password")
    if not user.is_verified:
        raise Forbidden("Please verify your email before logging in")
    return user


# --- registration & verification -------------------------------------------

@bp.post("/register")
@limiter.limit("16 per hour", error_message="Too many registration attempts, please try again later")
def register():
    body = load(RegisterRequest)
    if User.query.filter_by(email=body.email).first():
        raise Conflict("User already exists")

    user = User(
        name=body.name,
        email=body.email,
        password_hash=generate_password_hash(body.password),
        role="user",
        is_verified=False,
    )
    db.session.add(user)
    db.session.commit()

    token = _serializer().dumps({"uid": user.id})
    try:
        get_mailer().send_verification_email(user.email, token)
    except UpstreamError:
        user_id = user.id
        db.session.delete(user)
        db.session.commit()
        current_app.logger.warning("Registration of user %s rolled back, verification email failed", user_id)
        raise

    current_app.logger.info("User %s registered", user.id)
    return ok(
        "Registration successful. Please check your email to verify your account.",
        {"user": user.as_dict()},
        201,
    )


@bp.get("/verify-email")
def verify_email():
    token = request.args.get("token", "")
    try:
        payload = _serializer().loads(token, max_age=VERIFY_MAX_AGE)
    except SignatureExpired:
        raise BadRequest("Verification link has expired")
    except BadSignature:
        raise BadRequest("Invalid verification link")

    user = db.session.get(User, payload.get("uid"))
    if not user:
        raise NotFound("User not found")
    # a replayed link confirms the state but never hands out a session
    if user.is_verified:
        return ok("Email already verified", {"user": user.as_dict()})
    user.is_verified = True
    current_app.logger.info("User %s verified their email", user.id)
    return ok("Email verified successfully", _token_payload(user))


# --- sessions --------------------------------------------------------------

@bp.post("/login")
@login_limit
def login():
    body = load(LoginRequest)
    user = _authenticate(body.email, body.password)
    current_app.logger.info("User %s logged in", user.id)
    return ok("You've logged in successfully", _token_payload(user))


@bp.post("/admin")
@login_limit
def admin_login():
    body = load(LoginRequest)
    user = _authenticate(body.email, body.password)
    if not user.is_admin:
        current_app.logger.warning("Non-admin %s attempted admin login", user.id)
        raise Forbidden("Forbidden: Admin access required")
    return ok("Admin logged in successfully", _token_payload(user))


@bp.post("/refresh")
def refresh():
    body = load(RefreshRequest)
    refresh_row = RefreshToken.query.filter_by(token=body.refresh_token).first()
    if not refresh_row or refresh_row.expires_at < datetime.utcnow():
        if refresh_row:
            db.session.delete(refresh_row)
            db.session.commit()
        raise Unauthorized("Invalid or expired refresh token")

    user = db.session.get(User, refresh_row.user_id)
    # single use: the presented token is gone once a new pair is issued
    db.session.delete(refresh_row)
    db.session.flush()
    if not user:
        db.session.commit()
        raise Unauthorized("Invalid or expired refresh token")

    access_token, refresh_token = _issue_tokens(user)
    db.session.commit()
    return ok("Token refreshed", {"access_token": access_token, "refresh_token": refresh_token})


@bp.post("/logout")
def logout():
    body = load(LogoutRequest)
    user = optional_user()
    q = None
    if body.refresh_token:
        q = RefreshToken.query.filter_by(token=body.refresh_token)
    elif user is not None:
        q = RefreshToken.query.filter_by(user_id=user.id)
    if q is not None:
        q.delete(synchronize_session=False)
        db.session.commit()
    return ok("Logged out successfully")


@bp.route("/profile", methods=["GET", "POST"])
@login_required
@verified_required
def profile():
    return ok("Profile fetched", {"user": g.current_user.as_dict()})


# --- passwords -------------------------------------------------------------

@bp.post("/forgot-password")
@password_limit
def forgot_password():
    body = load(ForgotPasswordRequest)
    user = User.query.filter_by(email=body.email).first()
    if user:
        token = secrets.token_urlsafe(32)
        user.reset_password_token = _hash_token(token)
        user.reset_password_expires = datetime.utcnow() + RESET_TTL
        db.session.commit()
        get_mailer().send_password_reset_email(user.email, token)
        current_app.logger.info("Password reset requested for user %s", user.id)
    else:
        current_app.logger.debug("Password reset requested for unknown email")
    return ok("If an account exists for that email, a reset link has been sent")


@bp.post("/reset-password")
@password_limit
def reset_password():
    body = load(ResetPasswordRequest)
    user = User.query.filter(
        User.reset_password_token == _hash_token(body.token),
        User.reset_password_expires > datetime.utcnow(),
    ).first()
    if not user:
        raise BadRequest("Invalid or expired reset token")

    user.password_hash = generate_password_hash(body.password)
    user.reset_password_token = None
    user.reset_password_expires = None
    RefreshToken.query.filter_by(user_id=user.id).delete(synchronize_session=False)
    db.session.commit()
    current_app.logger.info("Password reset for user %s", user.id)
    return ok("Password has been reset successfully")


@bp.post("/update-password")
@password_limit
@login_required
@verified_required
def update_password():
    body = load(UpdatePasswordRequest)
    user = g.current_user
    if not user.password_hash:
        raise BadRequest("This account uses Google sign-in and has no password")
    if not check_password_hash(user.password_hash, body.old_password):
        raise BadRequest("Current password is incorrect")
    if body.old_password == body.new_password:
        raise BadRequest("New password must be different from the current password")

    user.password_hash = generate_password_hash(body.new_password)
    db.session.commit()
    return ok("Password updated successfully")


# --- admin -----------------------------------------------------------------

@bp.get("/users")
@admin_required
def list_users():
    """
    Query params:
      - search (name or email substring)
      - role=user|admin
      - page, limit
    """
    page, limit = page_args(default_limit=20)
    q = User.query
    search = (request.args.get("search") or "").strip()
    if search:
        like = f"%{search}%"
        q = q.filter(or_(User.name.ilike(like), User.email.ilike(like)))
    role = (request.args.get("role") or "").strip().lower()
    if role:
        if role not in {"user", "admin"}:
            raise BadRequest("Invalid role")
        q = q.filter(User.role == role)

    paged = q.order_by(User.created_at.desc(), User.id.desc()).paginate(page=page, per_page=limit, error_out=False)
    return ok("Users fetched", {
        "users": [u.as_dict() for u in paged.items],
        "pagination": page_meta(paged, limit),
    })


@bp.post("/create-admin")
@admin_required
def create_admin():
    body = load(RegisterRequest)
    if User.query.filter_by(email=body.email).first():
        raise Conflict("User already exists")
    admin = User(
        name=body.name,
        email=body.email,
        password_hash=generate_password_hash(body.password),
        role="admin",
        is_verified=True,
    )
    db.session.add(admin)
    db.session.commit()
    current_app.logger.info("Admin %s created by %s", admin.id, g.current_user.id)
    return ok("Admin created", {"user": admin.as_dict()}, 201)


@bp.delete("/delete-user")
@admin_required
def delete_user():
    body = load(DeleteUserRequest)
    actor = g.current_user
    if body.user_id == actor.id:
        raise BadRequest("You cannot delete your own account")
    target = db.session.get(User, body.user_id)
    if not target:
        raise NotFound("User not found")
    if target.is_admin:
        raise Forbidden("Cannot delete another admin")

    # orders outlive the account; reviews and sessions do not
    Order.query.filter_by(user_id=target.id).update({"user_id": None}, synchronize_session=False)
    RefreshToken.query.filter_by(user_id=target.id).delete(synchronize_session=False)
    reviewed = [r.product_id for r in Review.query.filter_by(user_id=target.id).all()]
    Review.query.filter_by(user_id=target.id).delete(synchronize_session=False)
    db.session.delete(target)
    db.session.flush()

    if reviewed:
        for product in Product.query.filter(Product.id.in_(reviewed)).all():
            db.session.refresh(product)
            product.recompute_rating()
    db.session.commit()
    current_app.logger.info("User %s deleted by admin %s", body.user_id, actor.id)
    return ok("User deleted", {"user_id": body.user_id})


# --- Google OAuth ----------------------------------------------------------

@bp.get("/google")
def google_login():
    state = secrets.token_urlsafe(16)
    resp = redirect(get_google().authorization_url(state))
    resp.set_cookie(
        OAUTH_STATE_COOKIE,
        state,
        max_age=600,
        httponly=True,
        samesite="Lax",
        secure=current_app.config.get("COOKIE_SECURE", False),
    )
    return resp


def _google_user(profile: dict) -> User:
    google_id = profile.get("sub")
    email = (profile.get("email") or "").strip().lower()
    if not google_id or not email:
        raise UpstreamError("Google profile is missing an id or email")

    user = User.query.filter_by(google_id=google_id).first()
    if user is None:
        user = User.query.filter_by(email=email).first()
        if user is not None:
            user.google_id = google_id
        else:
            user = User(name=profile.get("name") or email.split("@")[0], email=email, google_id=google_id)
            db.session.add(user)
    user.is_verified = True
    db.session.flush()
    return user


@bp.get("/google/callback")
def google_callback():
    frontend = current_app.config["FRONTEND_URL"].rstrip("/")
    expected = request.cookies.get(OAUTH_STATE_COOKIE) or ""
    state = request.args.get("state") or ""
    code = request.args.get("code")

    try:
        if not expected or not hmac.compare_digest(expected, state):
            raise BadRequest("Invalid OAuth state")
        if not code:
            raise BadRequest("Missing authorization code")
        user = _google_user(get_google().exchange_code(code))
        access_token, refresh_token = _issue_tokens(user)
        db.session.commit()
    except ApiError as e:
        db.session.rollback()
        current_app.logger.warning("Google sign-in failed: %s", e.message)
        resp = redirect(f"{frontend}/error?{urlencode({'message': e.message})}")
    else:
        current_app.logger.info("User %s signed in with Google", user.id)
        query = urlencode({"accessToken": access_token, "refreshToken": refresh_token, "userId": user.id})
        resp = redirect(f"{frontend}/success?{query}")
    resp.delete_cookie(OAUTH_STATE_COOKIE)
    return resp
