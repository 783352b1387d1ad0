# storefront/cli.py
from decimal import Decimal

import click
from werkzeug.security import generate_password_hash

from .extensions import db
from .model import Product, User
from .schemas import password_problem

SAMPLE_PRODUCTS = [
    {"name": "Classic Cotton Tee", "description": "Soft everyday t-shirt in combed cotton.", "price": "350.00", "stock": 40, "category": "Men", "sub_category": "Topwear", "sizes": ["S", "M", "L", "XL"], "bestseller": True},
    {"name": "Slim Fit Chinos", "description": "Stretch chinos with a tapered leg.", "price": "720.00", "stock": 25, "category": "Men", "sub_category": "Bottomwear", "sizes": ["30", "32", "34", "36"], "bestseller": False},
    {"name": "Quilted Bomber Jacket", "description": "Lightweight quilted jacket for cool evenings.", "price": "1450.00", "stock": 12, "category": "Men", "sub_category": "Winterwear", "sizes": ["M", "L", "XL"], "bestseller": False},
    {"name": "Linen Wrap Blouse", "description": "Breathable linen blouse with a tie waist.", "price": "540.00", "stock": 30, "category": "Women", "sub_category": "Topwear", "sizes": ["XS", "S", "M", "L"], "bestseller": True},
    {"name": "High Rise Denim", "description": "Five-pocket jeans with a high rise.", "price": "890.00", "stock": 22, "category": "Women", "sub_category": "Bottomwear", "sizes": ["26", "28", "30", "32"], "bestseller": True},
    {"name": "Wool Blend Coat", "description": "Single-breasted coat in a warm wool blend.", "price": "2300.00", "stock": 8, "category": "Women", "sub_category": "Winterwear", "sizes": ["S", "M", "L"], "bestseller": False},
    {"name": "Kids Graphic Hoodie", "description": "Fleece-lined hoodie with a printed front.", "price": "420.00", "stock": 35, "category": "Kids", "sub_category": "Topwear", "sizes": ["4Y", "6Y", "8Y", "10Y"], "bestseller": False},
    {"name": "Kids Jogger Pants", "description": "Elastic waist joggers for play.", "price": "310.00", "stock": 50, "category": "Kids", "sub_category": "Bottomwear", "sizes": ["4Y", "6Y", "8Y", "10Y"], "bestseller": False},
    {"name": "Kids Puffer Vest", "description": "Packable puffer vest.", "price": "560.00", "stock": 15, "category": "Kids", "sub_category": "Winterwear", "sizes": ["6Y", "8Y", "10Y"], "bestseller": True},
    {"name": "Ribbed Tank Top", "description": "Fitted ribbed tank in stretch cotton.", "price": "240.00", "stock": 60, "category": "Women", "sub_category": "Topwear", "sizes": ["XS", "S", "M"], "bestseller": False},
]


@click.command("create-admin")
@click.option("--email", required=True)
@click.option("--password", required=True)
@click.option("--name", required=True)
def create_admin(email, password, name):
    email = email.strip().lower()
    if User.query.filter_by(email=email).first():
        raise click.ClickException("Email already exists")
    problem = password_problem(password)
    if problem:
        raise click.ClickException(problem)
    u = User(email=email, name=name, password_hash=generate_password_hash(password), role="admin", is_verified=True)
    db.session.add(u); db.session.commit()
    click.echo(f"Admin created: {u.id} {u.email}")


@click.command("seed-products")
def seed_products():
    """Insert a small sample catalog (skips names that already exist)."""
    added = 0
    for data in SAMPLE_PRODUCTS:
        if Product.query.filter_by(name=data["name"]).first():
            continue
        db.session.add(Product(**{**data, "price": Decimal(data["price"])}))
        added += 1
    db.session.commit()
    click.echo(f"{added} sample products added")


def register_cli(app):
    app.cli.add_command(create_admin)
    app.cli.add_command(seed_products)
