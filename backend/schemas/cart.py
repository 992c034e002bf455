from pydantic import Field
from typing import List, Optional

from schemas.common import CamelModel

# Request schema for adding an item to the cart
class CartAddItem(CamelModel):
    product_id: int
    quantity: int = Field(default=1, gt=0)

# Request schema for updating cart item quantity (0 or less removes the item)
class CartUpdateItem(CamelModel):
    quantity: int

# Response schema for a single cart line item
class CartItemOut(CamelModel):
    id: int
    product_id: int
    name: str
    image: Optional[str] = None
    quantity: int
    price: float
    line_total: float

# Response schema for the entire cart
class CartOut(CamelModel):
    id: int
    user_id: int
    items: List[CartItemOut]
    total_price: float
