"""
Inventory collaborators — read-only views over merchants and products.

The alerting core never mutates inventory; it only asks which products are
running low and what a merchant's shop is called.
"""

from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from core.exceptions import NotFoundError, PersistenceError
from db.models import Merchant, Product


@dataclass(frozen=True)
class LowStockProduct:
    id: int
    name: str
    quantity: int
    price: float

    def snapshot(self) -> dict:
        return {"id": self.id, "name": self.name, "quantity": self.quantity, "price": self.price}


class InventoryReader:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def low_stock_products(self, merchant_id: int, threshold: int) -> list[LowStockProduct]:
        """Products with 0 < quantity <= threshold, most urgent first."""
        try:
            result = await self.db.execute(
                select(Product.product_id, Product.name, Product.quantity, Product.price)
                .where(
                    Product.merchant_id == merchant_id,
                    Product.quantity > 0,
                    Product.quantity <= threshold,
                )
                .order_by(Product.quantity.asc(), Product.product_id.asc())
            )
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Error fetching low stock products: {exc}") from exc

        return [
            LowStockProduct(
                id=row.product_id,
                name=row.name,
                quantity=int(row.quantity),
                price=float(row.price or 0.0),
            )
            for row in result.all()
        ]


class MerchantDirectory:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def shop_name(self, merchant_id: int) -> str:
        try:
            merchant = await self.db.get(Merchant, merchant_id)
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Error fetching merchant: {exc}") from exc
        if merchant is None:
            raise NotFoundError(f"Merchant {merchant_id} not found")
        return merchant.shop_name
