"""
main.py — FastAPI Entry Point for the Campus Marketplace Order Service

This module provides the REST API used by the marketplace's single-page client.
It sits between the client and the hosted backend (data store, auth, edge
functions) and owns the parts of the marketplace that must not be left to the
browser: cart checkout, the order status gate and role-gated access.

Responsibilities:
    • Session carts (add, update, remove, clear)
    • Checkout: one order per vendor, notifications as background tasks
    • Order listing, details and confirmation messages
    • Order status transitions gated by role
    • Role-specific dashboards and view access decisions
    • Vendor approval by the administrator
    • Health information
"""

from typing import List, Optional, Tuple

from fastapi import BackgroundTasks, Depends, FastAPI, Header, HTTPException, Request
from fastapi.responses import JSONResponse

from .access import VIEW_ROLES, decide_access, is_administrator
from .cart import Cart, CartStore
from .checkout import process_checkout
from .clients import AuthClient, DataStoreClient, NotificationClient
from .dashboards import Dashboard, build_dashboard
from .errors import (
    AuthenticationError,
    AuthorizationError,
    CheckoutValidationError,
    MarketplaceError,
    NotFoundError,
    PersistenceError,
)
from .lifecycle import change_order_status
from .logging_config import get_logger, setup_logging
from .models import (
    AccessDecision,
    AddCartItemRequest,
    AuthState,
    CartView,
    CheckoutDetails,
    CheckoutSummary,
    ConfirmationView,
    OrderRecord,
    OrderWithItems,
    Profile,
    StatusUpdateRequest,
    UpdateCartItemRequest,
    UserRole,
    Vendor,
    VendorRejectionRequest,
)
from .notifications import NotificationDispatcher, build_order_message, generate_whatsapp_link
from .vendors import approve_vendor, reject_vendor

# Initialization
# Configure logging and initialize FastAPI app
setup_logging()
log = get_logger(__name__)
app = FastAPI(title="Campus Marketplace Order Service")
app.state.carts = CartStore()

CHECKOUT_FAILED = "There was an error placing your order. Please try again."


@app.on_event("startup")
def on_startup():
    log.info("Marketplace-Service startet...")


# Dependencies
def get_data_store() -> DataStoreClient:
    return DataStoreClient()


def get_auth_client() -> AuthClient:
    return AuthClient()


def get_dispatcher() -> NotificationDispatcher:
    return NotificationDispatcher(NotificationClient())


def get_cart_store(request: Request) -> CartStore:
    return request.app.state.carts


def get_session_id(x_session_id: str = Header(..., alias="X-Session-Id")) -> str:
    return x_session_id


def resolve_auth(
    authorization: Optional[str] = Header(default=None),
    auth: AuthClient = Depends(get_auth_client),
    store: DataStoreClient = Depends(get_data_store),
) -> Tuple[AuthState, Optional[Profile]]:
    """
    Determines the authentication state of the caller.

    Returns:
        tuple: (AuthState, Profile or None).
            - absent: no bearer token, or the token was rejected
            - pending: valid session whose profile is not available yet
            - present: valid session with profile
    """
    if not authorization or not authorization.startswith("Bearer "):
        return AuthState.ABSENT, None
    token = authorization.split(" ", 1)[1]
    try:
        user_id = auth.get_user_id(token)
        profile = store.get_profile(user_id)
    except AuthenticationError:
        return AuthState.ABSENT, None
    except PersistenceError as e:
        raise HTTPException(status_code=502, detail=e.message)
    if profile is None:
        return AuthState.PENDING, None
    return AuthState.PRESENT, profile


def get_current_profile(auth_result: Tuple[AuthState, Optional[Profile]] = Depends(resolve_auth)) -> Profile:
    state, profile = auth_result
    if state != AuthState.PRESENT:
        raise HTTPException(status_code=401, detail="Please log in to continue")
    return profile


def _http_error(e: MarketplaceError) -> HTTPException:
    """Maps a domain error to the HTTP response shown to the user."""
    if isinstance(e, CheckoutValidationError):
        return HTTPException(status_code=400, detail={"title": e.title, "message": e.message})
    if isinstance(e, AuthenticationError):
        return HTTPException(status_code=401, detail=e.message)
    if isinstance(e, AuthorizationError):
        return HTTPException(status_code=403, detail=e.message)
    if isinstance(e, NotFoundError):
        return HTTPException(status_code=404, detail=e.message)
    return HTTPException(status_code=502, detail=e.message)


def _cart_view(cart: Optional[Cart]) -> CartView:
    if cart is None:
        return CartView(items=[], item_count=0, total=0)
    return CartView(items=cart.items, item_count=cart.item_count(), total=cart.total())


def _ensure_can_view(order: OrderRecord, profile: Profile, store: DataStoreClient) -> None:
    if is_administrator(profile) or order.user_id == profile.id:
        return
    if profile.role == UserRole.VENDOR:
        vendor = store.get_vendor_by_user(profile.id)
        if vendor is not None and vendor.id == order.vendor_id:
            return
    raise AuthorizationError("You do not have access to this order")


# Cart
@app.get("/v1/cart", response_model=CartView)
def read_cart(session_id: str = Depends(get_session_id), carts: CartStore = Depends(get_cart_store)):
    with carts.locked(session_id, create=False) as cart:
        return _cart_view(cart)


@app.post("/v1/cart/items", response_model=CartView)
def add_cart_item(
    payload: AddCartItemRequest,
    session_id: str = Depends(get_session_id),
    carts: CartStore = Depends(get_cart_store),
    store: DataStoreClient = Depends(get_data_store),
):
    try:
        product = store.get_product(payload.product_id)
        with carts.locked(session_id) as cart:
            cart.add_item(product, payload.quantity)
            return _cart_view(cart)
    except MarketplaceError as e:
        raise _http_error(e)


@app.patch("/v1/cart/items/{product_id}", response_model=CartView)
def update_cart_item(
    product_id: str,
    payload: UpdateCartItemRequest,
    session_id: str = Depends(get_session_id),
    carts: CartStore = Depends(get_cart_store),
):
    with carts.locked(session_id, create=False) as cart:
        if cart is not None:
            cart.update_quantity(product_id, payload.quantity)
        return _cart_view(cart)


@app.delete("/v1/cart/items/{product_id}", response_model=CartView)
def remove_cart_item(
    product_id: str,
    session_id: str = Depends(get_session_id),
    carts: CartStore = Depends(get_cart_store),
):
    with carts.locked(session_id, create=False) as cart:
        if cart is not None:
            cart.remove_item(product_id)
        return _cart_view(cart)


@app.delete("/v1/cart", response_model=CartView)
def clear_cart(session_id: str = Depends(get_session_id), carts: CartStore = Depends(get_cart_store)):
    with carts.locked(session_id, create=False) as cart:
        if cart is not None:
            cart.clear()
        return _cart_view(cart)


# Checkout
@app.post("/v1/checkout", status_code=201, response_model=CheckoutSummary)
def checkout(
    details: CheckoutDetails,
    background_tasks: BackgroundTasks,
    session_id: str = Depends(get_session_id),
    profile: Profile = Depends(get_current_profile),
    carts: CartStore = Depends(get_cart_store),
    store: DataStoreClient = Depends(get_data_store),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    """
    Converts the session cart into one order per vendor.

    Vendor notifications are scheduled as background tasks and run after the
    response was sent; their failure never affects the checkout result.

    Returns:
        CheckoutSummary: Created orders and the confirmation details (HTTP 201).

    Raises:
        HTTPException(400): Validation failed, nothing was persisted.
        HTTPException(401): Caller is not logged in.

    A persistence failure answers HTTP 502 and lists the orders of vendor
    groups that were committed before the failure.
    """
    log_prefix = f"[Checkout: {session_id}]"

    def notify(order_id, notification_type, recipient_type):
        background_tasks.add_task(dispatcher.dispatch, order_id, notification_type, recipient_type)

    with carts.locked(session_id, create=False) as cart:
        try:
            return process_checkout(cart or Cart(session_id), details, profile.id, store, notify)
        except CheckoutValidationError as e:
            log.info(f"{log_prefix} Checkout abgelehnt: {e.title}")
            raise _http_error(e)
        except PersistenceError as e:
            log.error(f"{log_prefix} Checkout fehlgeschlagen: {e.message}")
            return JSONResponse(
                status_code=502,
                content={"detail": CHECKOUT_FAILED, "committedOrderIds": e.committed_order_ids},
                background=background_tasks,
            )


# Orders
@app.get("/v1/orders", response_model=List[OrderRecord])
def list_orders(profile: Profile = Depends(get_current_profile), store: DataStoreClient = Depends(get_data_store)):
    """Lists the orders visible to the caller, newest first."""
    try:
        if is_administrator(profile):
            return store.list_orders()
        if profile.role == UserRole.VENDOR:
            vendor = store.get_vendor_by_user(profile.id)
            return store.list_orders(vendor_id=vendor.id) if vendor else []
        return store.list_orders(user_id=profile.id)
    except MarketplaceError as e:
        raise _http_error(e)


@app.get("/v1/orders/{order_id}", response_model=OrderWithItems)
def read_order(
    order_id: str,
    profile: Profile = Depends(get_current_profile),
    store: DataStoreClient = Depends(get_data_store),
):
    try:
        order = store.get_order(order_id)
        _ensure_can_view(order, profile, store)
        return OrderWithItems(order=order, items=store.list_order_items(order_id))
    except MarketplaceError as e:
        raise _http_error(e)


@app.patch("/v1/orders/{order_id}/status", response_model=OrderRecord)
def update_order_status(
    order_id: str,
    payload: StatusUpdateRequest,
    background_tasks: BackgroundTasks,
    profile: Profile = Depends(get_current_profile),
    store: DataStoreClient = Depends(get_data_store),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    """
    Moves an order to a new status.

    Raises:
        HTTPException(403): The caller's role does not permit the transition.
        HTTPException(404): Unknown order.
        HTTPException(502): The update could not be stored.
    """
    def notify(oid, notification_type, recipient_type):
        background_tasks.add_task(dispatcher.dispatch, oid, notification_type, recipient_type)

    try:
        return change_order_status(order_id, payload.status, profile, store, notify, notes=payload.notes)
    except MarketplaceError as e:
        raise _http_error(e)


@app.get("/v1/orders/{order_id}/confirmation", response_model=ConfirmationView)
def order_confirmation(
    order_id: str,
    profile: Profile = Depends(get_current_profile),
    store: DataStoreClient = Depends(get_data_store),
):
    """Prefilled order message and WhatsApp link for contacting the order's vendor."""
    try:
        order = store.get_order(order_id)
        _ensure_can_view(order, profile, store)
        vendor = store.get_vendor(order.vendor_id)
        message = build_order_message(order, store.list_order_items(order_id))
    except MarketplaceError as e:
        raise _http_error(e)
    return ConfirmationView(
        order_id=order.id,
        vendor_name=vendor.display_name,
        message=message,
        whatsapp_link=generate_whatsapp_link(vendor.whatsapp_number, message),
    )


# Dashboards & access
@app.get("/v1/dashboard", response_model=Dashboard)
def dashboard(profile: Profile = Depends(get_current_profile), store: DataStoreClient = Depends(get_data_store)):
    try:
        return build_dashboard(profile, store)
    except MarketplaceError as e:
        raise _http_error(e)


@app.get("/v1/views/{view}/access", response_model=AccessDecision)
def view_access(view: str, auth_result: Tuple[AuthState, Optional[Profile]] = Depends(resolve_auth)):
    if view not in VIEW_ROLES:
        raise HTTPException(status_code=404, detail="Unknown view")
    state, profile = auth_result
    return decide_access(view, state, profile, VIEW_ROLES[view])


# Vendor approval
@app.post("/v1/admin/vendors/{vendor_id}/approve", response_model=Vendor)
def approve_vendor_application(
    vendor_id: str,
    profile: Profile = Depends(get_current_profile),
    store: DataStoreClient = Depends(get_data_store),
):
    try:
        return approve_vendor(vendor_id, profile, store)
    except MarketplaceError as e:
        raise _http_error(e)


@app.post("/v1/admin/vendors/{vendor_id}/reject", response_model=Vendor)
def reject_vendor_application(
    vendor_id: str,
    payload: VendorRejectionRequest,
    profile: Profile = Depends(get_current_profile),
    store: DataStoreClient = Depends(get_data_store),
):
    try:
        return reject_vendor(vendor_id, profile, store, payload.reason)
    except MarketplaceError as e:
        raise _http_error(e)


# Health Check Endpoint
@app.get("/health")
def health_check():
    """
    Simple health check endpoint.

    Can be used by monitoring systems or container orchestrators
    (e.g., Docker, Kubernetes) to verify that the service is running.
    """
    return {"status": "ok"}
