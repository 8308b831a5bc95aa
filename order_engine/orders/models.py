"""
Order, quote and notification data types shared by every engine component.

Orders travel between the orchestrator and the store as working copies;
``to_dict`` / ``from_dict`` give them a storage-neutral form with enum values
and ISO-8601 timestamps.
"""

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Dict, Optional, Union
from uuid import uuid4

from order_engine.core.exceptions import OrderValidationError

MAX_TOKEN_SYMBOL_LENGTH = 100
DEFAULT_SLIPPAGE = 0.01


class OrderType(str, Enum):
    """Order variants: immediate, price-triggered and time-triggered."""

    MARKET = "market"
    LIMIT = "limit"
    SNIPER = "sniper"


class OrderStatus(str, Enum):
    """Order lifecycle states."""

    PENDING = "pending"
    ROUTING = "routing"
    BUILDING = "building"
    SUBMITTED = "submitted"
    CONFIRMED = "confirmed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (OrderStatus.CONFIRMED, OrderStatus.FAILED)


class DexProvider(str, Enum):
    """Liquidity venues known to the simulated router."""

    RAYDIUM = "raydium"
    METEORA = "meteora"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value: Union[str, datetime, None]) -> Optional[datetime]:
    """Parse an ISO-8601 string or datetime into an aware UTC datetime."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError as e:
            raise OrderValidationError(
                f"Invalid ISO-8601 timestamp: {value}", field="launch_time"
            ) from e
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _format_timestamp(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def to_quantity(value: Any, field_name: str = "") -> Optional[Decimal]:
    """Convert an amount to Decimal through its string form; None passes through."""
    if value is None or isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise OrderValidationError(f"Invalid amount: {value}", field=field_name)
    try:
        return Decimal(str(value))
    except InvalidOperation as e:
        raise OrderValidationError(f"Invalid amount: {value}", field=field_name) from e


def _quantity_to_float(value: Optional[Decimal]) -> Optional[float]:
    return float(value) if value is not None else None


def coerce_order_type(value: Union[OrderType, str]) -> Union[OrderType, str]:
    """Map a stored type to ``OrderType``, keeping unknown values verbatim."""
    if isinstance(value, OrderType):
        return value
    try:
        return OrderType(value)
    except ValueError:
        return value


@dataclass
class Quote:
    """
    Price offered by one liquidity source for a given trade size.

    Attributes:
        provider: Source identifier
        price: Unit price before fees
        fee: Fee fraction charged by the source
        amount_out: Output amount net of fee and price impact
        price_impact: Price impact fraction
        timestamp: When the quote was generated
    """

    provider: str
    price: float
    fee: float
    amount_out: float
    price_impact: float
    timestamp: datetime = field(default_factory=utc_now)

    def to_dict(self) -> Dict[str, Any]:
        provider = self.provider.value if isinstance(self.provider, Enum) else self.provider
        return {
            "provider": provider,
            "price": self.price,
            "fee": self.fee,
            "amountOut": self.amount_out,
            "priceImpact": self.price_impact,
            "timestamp": _format_timestamp(self.timestamp),
        }


@dataclass
class SwapResult:
    """Outcome of a swap execution call against a liquidity source."""

    success: bool
    tx_hash: Optional[str] = None
    executed_price: Optional[float] = None
    amount_out: Optional[float] = None
    error: Optional[str] = None
    gas_used: Optional[float] = None


@dataclass
class Order:
    """
    Unit of trading intent and its lifecycle state.

    Attributes:
        id: Opaque unique identifier assigned at submission
        type: Order variant (unknown stored values are kept as strings)
        token_in: Input asset symbol
        token_out: Output asset symbol
        amount_in: Input amount, always positive
        amount_out: Optional desired output amount
        target_price: Trigger price, present only for limit orders
        launch_time: Trigger time, present only for sniper orders
        slippage: Slippage tolerance fraction in [0, 1]
        status: Current lifecycle status
        created_at: Submission time
        updated_at: Time of the last transition
        user_id: Optional submitter tag
        dex_provider: Source chosen for execution
        executed_price: Realized unit price
        tx_hash: Transaction reference
        amount_received: Realized output amount
        error_message: Failure reason, set only when FAILED
    """

    type: Union[OrderType, str]
    token_in: str
    token_out: str
    amount_in: Decimal
    id: str = field(default_factory=lambda: str(uuid4()))
    amount_out: Optional[Decimal] = None
    target_price: Optional[float] = None
    launch_time: Optional[datetime] = None
    slippage: float = DEFAULT_SLIPPAGE
    status: OrderStatus = OrderStatus.PENDING
    created_at: datetime = field(default_factory=utc_now)
    updated_at: Optional[datetime] = None
    user_id: Optional[str] = None
    dex_provider: Optional[str] = None
    executed_price: Optional[float] = None
    tx_hash: Optional[str] = None
    amount_received: Optional[Decimal] = None
    error_message: Optional[str] = None

    def __post_init__(self) -> None:
        self.type = coerce_order_type(self.type)
        self.amount_in = to_quantity(self.amount_in)
        self.amount_out = to_quantity(self.amount_out)
        self.amount_received = to_quantity(self.amount_received)
        if self.updated_at is None:
            self.updated_at = self.created_at

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def touch(self) -> None:
        """Advance ``updated_at`` without ever moving it backwards."""
        now = utc_now()
        if self.updated_at is None or now > self.updated_at:
            self.updated_at = now

    def to_dict(self) -> Dict[str, Any]:
        """Convert order to a dictionary for storage."""
        order_type = self.type.value if isinstance(self.type, OrderType) else self.type
        return {
            "id": self.id,
            "type": order_type,
            "token_in": self.token_in,
            "token_out": self.token_out,
            "amount_in": _quantity_to_float(self.amount_in),
            "amount_out": _quantity_to_float(self.amount_out),
            "target_price": self.target_price,
            "launch_time": _format_timestamp(self.launch_time),
            "slippage": self.slippage,
            "status": self.status.value,
            "created_at": _format_timestamp(self.created_at),
            "updated_at": _format_timestamp(self.updated_at),
            "user_id": self.user_id,
            "dex_provider": self.dex_provider,
            "executed_price": self.executed_price,
            "tx_hash": self.tx_hash,
            "amount_received": _quantity_to_float(self.amount_received),
            "error_message": self.error_message,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Order":
        """Create order from dictionary."""
        data = dict(data)
        if isinstance(data.get("status"), str):
            data["status"] = OrderStatus(data["status"])
        for key in ("launch_time", "created_at", "updated_at"):
            if key in data:
                data[key] = parse_timestamp(data[key])

        return cls(**data)


@dataclass
class OrderSubmission:
    """Order request accepted by the orchestrator's ``submit``."""

    type: Union[OrderType, str]
    token_in: str
    token_out: str
    amount_in: float
    amount_out: Optional[float] = None
    target_price: Optional[float] = None
    launch_time: Optional[Union[datetime, str]] = None
    slippage: Optional[float] = None
    user_id: Optional[str] = None

    _ALIASES = {
        "tokenIn": "token_in",
        "tokenOut": "token_out",
        "amountIn": "amount_in",
        "amountOut": "amount_out",
        "targetPrice": "target_price",
        "launchTime": "launch_time",
        "userId": "user_id",
    }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "OrderSubmission":
        """Build a submission from camelCase or snake_case keys."""
        fields = {}
        for key, value in data.items():
            fields[cls._ALIASES.get(key, key)] = value
        try:
            return cls(**fields)
        except TypeError as e:
            raise OrderValidationError(f"Invalid order submission: {e}") from e

    def validate(self) -> None:
        """
        Validate submission fields.

        Raises:
            OrderValidationError: If any field is missing or out of range
        """
        order_type = coerce_order_type(self.type)
        if not isinstance(order_type, OrderType):
            raise OrderValidationError(f"Unknown order type: {self.type}", field="type")

        for name in ("token_in", "token_out"):
            symbol = getattr(self, name)
            if not isinstance(symbol, str) or not symbol.strip():
                raise OrderValidationError(f"{name} is required", field=name)
            if len(symbol) > MAX_TOKEN_SYMBOL_LENGTH:
                raise OrderValidationError(
                    f"{name} must be at most {MAX_TOKEN_SYMBOL_LENGTH} characters",
                    field=name,
                )

        for name in ("amount_in", "amount_out"):
            amount = to_quantity(getattr(self, name), name)
            if amount is None and name == "amount_out":
                continue
            if amount is None or not amount.is_finite() or amount <= 0:
                raise OrderValidationError(f"{name} must be positive", field=name)
        if self.target_price is not None and self.target_price <= 0:
            raise OrderValidationError(
                "target_price must be positive", field="target_price"
            )
        if self.slippage is not None and not 0.0 <= self.slippage <= 1.0:
            raise OrderValidationError(
                "slippage must be between 0 and 1", field="slippage"
            )

        if order_type == OrderType.LIMIT and self.target_price is None:
            raise OrderValidationError(
                "Target price is required for limit orders", field="target_price"
            )
        if order_type == OrderType.SNIPER and self.launch_time is None:
            raise OrderValidationError(
                "Launch time is required for sniper orders", field="launch_time"
            )
        parse_timestamp(self.launch_time)

    def to_order(self) -> Order:
        """Build a fresh PENDING order from this submission."""
        now = utc_now()
        order_type = coerce_order_type(self.type)
        return Order(
            type=order_type,
            token_in=self.token_in,
            token_out=self.token_out,
            amount_in=self.amount_in,
            amount_out=self.amount_out,
            target_price=self.target_price if order_type == OrderType.LIMIT else None,
            launch_time=(
                parse_timestamp(self.launch_time)
                if order_type == OrderType.SNIPER
                else None
            ),
            slippage=self.slippage if self.slippage is not None else DEFAULT_SLIPPAGE,
            status=OrderStatus.PENDING,
            created_at=now,
            updated_at=now,
            user_id=self.user_id,
        )


@dataclass
class OrderUpdateMessage:
    """Notification published on every order status change."""

    order_id: str
    status: OrderStatus
    timestamp: datetime = field(default_factory=utc_now)
    data: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_order(
        cls, order: Order, extra: Optional[Dict[str, Any]] = None
    ) -> "OrderUpdateMessage":
        """Snapshot an order's status and any available outcome fields."""
        data: Dict[str, Any] = {
            "txHash": order.tx_hash,
            "executedPrice": order.executed_price,
            "amountOut": order.amount_received,
            "error": order.error_message,
            "dexProvider": order.dex_provider,
        }
        if extra:
            data.update(extra)
        return cls(
            order_id=order.id,
            status=order.status,
            data={key: value for key, value in data.items() if value is not None},
        )

    def to_dict(self) -> Dict[str, Any]:
        message: Dict[str, Any] = {
            "orderId": self.order_id,
            "status": self.status.value,
            "timestamp": _format_timestamp(self.timestamp),
        }
        if self.data:
            message["data"] = {
                key: _serialize(value) for key, value in self.data.items()
            }
        return message

    def to_json(self) -> str:
        return json.dumps(self.to_dict())


def _serialize(value: Any) -> Any:
    if isinstance(value, Quote):
        return value.to_dict()
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, list):
        return [_serialize(item) for item in value]
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    return value
