"""Typed wrapper over the cart service endpoints"""
from pydantic import BaseModel, ValidationError as SchemaError
from marketplace.client.api_client import ApiClient
from marketplace.core.exceptions import CollaboratorError
from marketplace.schemas.cart import CartLine, CartMessage, CartSnapshot, CartTotals, ServiceHealth
from typing import Any, Optional, Type, TypeVar

ModelT = TypeVar("ModelT", bound=BaseModel)


def _parse(model: Type[ModelT], data: Any) -> ModelT:
    try:
        return model.model_validate(data)
    except SchemaError as e:
        raise CollaboratorError(f"Malformed {model.__name__} from cart service") from e


class CartApi:

    def __init__(self, client: ApiClient):
        self.client = client

    async def close(self) -> None:
        await self.client.close()

    async def health(self) -> ServiceHealth:
        return _parse(ServiceHealth, await self.client.get("/health"))

    async def get_cart(self, page: int = 1, limit: Optional[int] = None) -> CartSnapshot:
        params = {"page": page}
        if limit:
            params["limit"] = limit
        return _parse(CartSnapshot, await self.client.get("", params=params))

    async def get_totals(self) -> CartTotals:
        return _parse(CartTotals, await self.client.get("/totals"))

    async def add_item(self, product_id: int, quantity: int = 1) -> CartLine:
        data = await self.client.post("/items", {"product_id": product_id, "quantity": quantity})
        return _parse(CartLine, data)

    async def update_item(self, item_id: int, quantity: int) -> CartLine:
        data = await self.client.put(f"/items/{item_id}", {"quantity": quantity})
        return _parse(CartLine, data)

    async def remove_item(self, item_id: int) -> CartMessage:
        return _parse(CartMessage, await self.client.delete(f"/items/{item_id}"))

    async def clear_cart(self) -> CartMessage:
        return _parse(CartMessage, await self.client.delete("/clear"))
