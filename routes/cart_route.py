from fastapi import APIRouter, Depends, Request

from microservices.auth_microservice import get_current_user_id
from schemas.cart_schemas import AddCartItemSchema, RemoveCartItemSchema, SaveLocalCart, UpdateCartItemSchema
from services.cart_service import CartService
from services.cart_sync_service import CartSyncService

router = APIRouter(prefix="/cart")


def get_cart_service(request: Request) -> CartService:
    return request.app.state.cart_service


def get_cart_sync_service(cart_service: CartService = Depends(get_cart_service)) -> CartSyncService:
    return CartSyncService(cart_service)


@router.get("/get-cart")
async def get_cart(user_id: str = Depends(get_current_user_id),
                   cart_service: CartService = Depends(get_cart_service)):
    # creates an empty cart on first visit
    cart = await cart_service.get(user_id)
    return {"status": "success", "cart": cart.to_response()}


@router.get("/cart-count")
async def cart_count(user_id: str = Depends(get_current_user_id),
                     cart_service: CartService = Depends(get_cart_service)):
    count = await cart_service.count(user_id)
    return {"status": "success", "count": count}


@router.post("/add-cart-item")
async def add_cart_item(req: AddCartItemSchema, user_id: str = Depends(get_current_user_id),
                        cart_service: CartService = Depends(get_cart_service)):
    # adds item to cart. if item already in cart, increase its quantity
    cart = await cart_service.add_item(user_id, **req.model_dump())
    return {"status": "success", "cart": cart.to_response()}


@router.post("/delete-cart-item")
async def delete_cart_item(req: RemoveCartItemSchema, user_id: str = Depends(get_current_user_id),
                           cart_service: CartService = Depends(get_cart_service)):
    cart = await cart_service.remove_item(user_id, req.product_id)
    return {"status": "success", "cart": cart.to_response()}


@router.post("/update-cart-item")
async def update_cart_item(req: UpdateCartItemSchema, user_id: str = Depends(get_current_user_id),
                           cart_service: CartService = Depends(get_cart_service)):
    # a quantity of zero or less removes the item
    cart = await cart_service.set_quantity(user_id, req.product_id, req.quantity)
    return {"status": "success", "cart": cart.to_response()}


@router.post("/clear-cart")
async def clear_cart(user_id: str = Depends(get_current_user_id),
                     cart_service: CartService = Depends(get_cart_service)):
    cart = await cart_service.clear(user_id)
    return {"status": "success", "cart": cart.to_response()}


@router.post("/save-local-cart")
async def save_local_cart(request: SaveLocalCart, user_id: str = Depends(get_current_user_id),
                          sync_service: CartSyncService = Depends(get_cart_sync_service)):
    # merges the cart a user had before logging in into their saved cart
    result = await sync_service.reconcile_snapshot(user_id, request.local_cart)
    return {"status": "success", "cart": result.cart.to_response(),
            "report": result.report.model_dump()}
