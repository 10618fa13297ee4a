from sqlalchemy.orm import Session

from app.models import Product


def get_active_products(db: Session) -> list[Product]:
    """Active catalog in stable order; the order decides which mentioned product wins."""
    return (
        db.query(Product)
        .filter(Product.is_active.is_(True))
        .order_by(Product.created_at, Product.name)
        .all()
    )


def format_catalog(products: list[Product]) -> str:
    if not products:
        return "- (no products available right now)"
    return "\n".join(
        f"- {p.name} ({p.currency} {p.price}) - {p.description or 'No description'} - Stock: {p.stock} units"
        for p in products
    )
