"""Seed commands for the storefront database.

Usage:
    storefront-seed admin
    storefront-seed products
    storefront-seed clear-products
"""

import logging

import click

from storefront import config, storage
from storefront.database import Base, SessionLocal, engine
from storefront.logging_setup import configure_logging
from storefront.schemas import ProductIn

logger = logging.getLogger(__name__)

DEMO_PRODUCTS = [
    {
        "slug": "mawu-foundation-tshirt",
        "name": "Mawu Foundation T-Shirt",
        "category": "Apparel",
        "price": "45.00",
        "tags": ["apparel", "clothing", "merchandise", "cotton"],
        "impactStatement": "Every purchase supports education programs in the Volta Region",
        "description": "Premium cotton t-shirt featuring the Mawu Foundation logo.",
        "images": ["https://images.unsplash.com/photo-1521572163474-6864f9cf17ab?w=800&q=80"],
        "inventory": 100,
        "variations": [
            {
                "type": "color",
                "name": "Color",
                "options": [
                    {"value": "white", "label": "White", "inventory": 40},
                    {"value": "blue", "label": "Blue", "inventory": 35},
                    {"value": "green", "label": "Green", "inventory": 25},
                ],
            },
            {
                "type": "size",
                "name": "Size",
                "options": [
                    {"value": "small", "label": "Small", "inventory": 20},
                    {"value": "medium", "label": "Medium", "inventory": 35},
                    {"value": "large", "label": "Large", "inventory": 30},
                    {"value": "xl", "label": "Extra Large", "priceModifier": 5, "inventory": 15},
                ],
            },
        ],
    },
    {
        "slug": "volta-region-tote-bag",
        "name": "Volta Region Tote Bag",
        "category": "Accessories",
        "price": "35.00",
        "tags": ["accessories", "bag", "eco-friendly"],
        "impactStatement": "Proceeds fund clean water initiatives in rural communities",
        "description": "Eco-friendly canvas tote bag handcrafted by local artisans.",
        "inventory": 75,
    },
    {
        "slug": "kente-pattern-notebook",
        "name": "Kente Pattern Notebook",
        "category": "Stationery",
        "price": "25.00",
        "tags": ["stationery", "notebook"],
        "impactStatement": "Supports literacy programs and school supplies for children",
        "description": "Hardcover notebook wrapped in a kente-inspired pattern.",
        "inventory": 120,
    },
    {
        "slug": "handwoven-basket",
        "name": "Handwoven Bolga Basket",
        "category": "Home & Living",
        "price": "85.00",
        "tags": ["home", "handmade"],
        "impactStatement": "Directly supports women artisans and their families",
        "description": "Traditional Bolgatanga basket woven from elephant grass.",
        "inventory": 30,
        "variations": [
            {
                "type": "size",
                "name": "Size",
                "options": [
                    {"value": "medium", "label": "Medium", "inventory": 18},
                    {"value": "large", "label": "Large", "priceModifier": 20, "inventory": 12},
                ],
            },
        ],
    },
    {
        "slug": "ghana-coffee-blend",
        "name": "Volta Region Coffee Blend",
        "category": "Food & Beverage",
        "price": "55.00",
        "tags": ["coffee", "food"],
        "impactStatement": "Supports local coffee farmers and agricultural development",
        "description": "Medium roast blend sourced from smallholder farms.",
        "inventory": 80,
    },
]


def ensure_admin(db, email=None, password=None, name=None):
    """Create the configured admin if it does not exist yet; returns the admin or None."""
    email = email or config.admin_email()
    password = password or config.admin_password()
    if not email or not password:
        return None

    admin = storage.find_admin_by_email(db, email)
    if admin is not None:
        return admin

    admin = storage.create_admin(db, email, password, name or config.ADMIN_NAME)
    db.commit()
    logger.info("Admin user created: %s", admin.email)
    return admin


def seed_products(db):
    created = 0
    for data in DEMO_PRODUCTS:
        if storage.get_product_by_slug(db, data["slug"]):
            logger.info("Skipping existing product %s", data["slug"])
            continue
        storage.create_product(db, ProductIn.model_validate(data))
        created += 1
    db.commit()
    return created


@click.group()
def cli():
    """Seed the storefront database."""
    configure_logging()
    Base.metadata.create_all(bind=engine)


@cli.command()
@click.option("--email", default=None, help="Defaults to ADMIN_EMAIL.")
@click.option("--password", default=None, help="Defaults to ADMIN_PASSWORD.")
@click.option("--name", default=None, help="Defaults to ADMIN_NAME.")
def admin(email, password, name):
    """Create the admin user."""
    db = SessionLocal()
    try:
        user = ensure_admin(db, email, password, name)
    finally:
        db.close()
    if user is None:
        raise click.ClickException("Set ADMIN_EMAIL and ADMIN_PASSWORD (or pass --email/--password).")
    click.echo(f"Admin ready: {user.email}")


@cli.command()
def products():
    """Load the demo product catalogue."""
    db = SessionLocal()
    try:
        created = seed_products(db)
    finally:
        db.close()
    click.echo(f"Created {created} products")


@cli.command("clear-products")
@click.confirmation_option(prompt="Delete every product?")
def clear_products():
    """Delete every product."""
    db = SessionLocal()
    try:
        count = storage.delete_all_products(db)
        db.commit()
    finally:
        db.close()
    click.echo(f"Deleted {count} products")


if __name__ == "__main__":
    cli()
