# storefront/services/google_oauth.py
from urllib.parse import urlencode

import requests
from flask import current_app

from ..errors import UpstreamError

AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
TOKEN_URL = "https://oauth2.googleapis.com/token"
USERINFO_URL = "https://openidconnect.googleapis.com/v1/userinfo"


class GoogleOAuthClient:
    def __init__(self, client_id, client_secret, redirect_uri):
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri

    @classmethod
    def from_config(cls, config):
        return cls(
            config.get("GOOGLE_CLIENT_ID"),
            config.get("GOOGLE_CLIENT_SECRET"),
            config.get("GOOGLE_REDIRECT_URI"),
        )

    def authorization_url(self, state: str) -> str:
        if not self.client_id:
            raise UpstreamError("Google sign-in is not configured")
        params = {
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "response_type": "code",
            "scope": "openid email profile",
            "state": state,
            "prompt": "select_account",
        }
        return f"{AUTH_URL}?{urlencode(params)}"

    def exchange_code(self, code: str) -> dict:
        """Trade an authorization code for the user's profile (sub, email, name, email_verified)."""
        try:
            token_resp = requests.post(TOKEN_URL, data={
                "code": code,
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "redirect_uri": self.redirect_uri,
                "grant_type": "authorization_code",
            })
            token_resp.raise_for_status()
            access_token = token_resp.json().get("access_token")
            if not access_token:
                raise UpstreamError("Google did not return an access token")

            info_resp = requests.get(USERINFO_URL, headers={"Authorization": f"Bearer {access_token}"})
            info_resp.raise_for_status()
        except requests.RequestException as e:
            current_app.logger.error("Google code exchange failed: %s", e)
            raise UpstreamError("Google authentication failed")
        return info_resp.json()


def get_google() -> GoogleOAuthClient:
    return current_app.extensions["google_oauth"]
