"""Правила конечного автомата статусов заказа.

Чистые функции без I/O: проверка допустимости перехода и
формирование служебной заметки. Оркестрация — в UpdateOrderStatusUseCase.
"""
from typing import Optional

from flowtrack.domain.models import OrderStatus, Role
from flowtrack.domain.exceptions import InvalidTransitionError


# Целевой статус -> из каких статусов в него можно попасть
ALLOWED_PREDECESSORS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.AT_DIGITIZER: frozenset({
        OrderStatus.AT_TEAM,
        OrderStatus.TEAM_REVIEW,   # только при отклонении командой
        OrderStatus.AT_DIGITIZER,  # только при переназначении
    }),
    OrderStatus.TEAM_REVIEW: frozenset({OrderStatus.AT_DIGITIZER}),
    OrderStatus.AT_VENDOR: frozenset({OrderStatus.TEAM_REVIEW, OrderStatus.PARTIALLY_SHIPPED}),
    OrderStatus.PARTIALLY_SHIPPED: frozenset({
        OrderStatus.AT_VENDOR,
        OrderStatus.PARTIALLY_SHIPPED,
        OrderStatus.OUT_FOR_DELIVERY,
    }),
    OrderStatus.OUT_FOR_DELIVERY: frozenset({OrderStatus.AT_VENDOR, OrderStatus.PARTIALLY_SHIPPED}),
}

# Отгружать можно только на этапе вендора
SHIPPABLE_STATUSES = frozenset({
    OrderStatus.AT_VENDOR,
    OrderStatus.PARTIALLY_SHIPPED,
    OrderStatus.OUT_FOR_DELIVERY,
})

REJECTION_PREFIX = "Team rejected:"
DESIGN_COMPLETE_PREFIX = "Digitizer: Design complete."


def is_rejection(note: Optional[str], flag: Optional[bool] = None) -> bool:
    """Явный флаг приоритетнее; без флага — совместимость со старыми клиентами по префиксу"""
    if flag is not None:
        return flag
    return bool(note) and note.startswith(REJECTION_PREFIX)


def is_allowed(current: OrderStatus, target: OrderStatus) -> bool:
    return current in ALLOWED_PREDECESSORS.get(target, frozenset())


def check_transition(current: OrderStatus, target: OrderStatus, rejection: bool = False) -> None:
    """Проверка легальности перехода current -> target (только при смене статуса)"""
    if current == target:
        return
    if target == OrderStatus.AT_DIGITIZER:
        expected = OrderStatus.TEAM_REVIEW if rejection else OrderStatus.AT_TEAM
        if current != expected:
            raise InvalidTransitionError(current, target)
        return
    if not is_allowed(current, target):
        raise InvalidTransitionError(current, target)


def check_shipment(current: OrderStatus) -> None:
    if current not in SHIPPABLE_STATUSES:
        raise InvalidTransitionError(current, OrderStatus.PARTIALLY_SHIPPED)


def status_after_shipment(fully_shipped: bool) -> OrderStatus:
    return OrderStatus.OUT_FOR_DELIVERY if fully_shipped else OrderStatus.PARTIALLY_SHIPPED


def strip_design_complete(text: str) -> str:
    text = text.strip()
    if text.startswith(DESIGN_COMPLETE_PREFIX):
        text = text[len(DESIGN_COMPLETE_PREFIX):].lstrip()
        if text.startswith("Note:"):
            text = text[len("Note:"):]
    return text.strip()


def _with_suffix(head: str, text: str, sep: str) -> str:
    return f"{head}{sep}{text}" if text else head


def compose_note(
    previous: OrderStatus,
    new_status: OrderStatus,
    free_text: Optional[str],
    *,
    fully_shipped: Optional[bool] = None,
    rejection: bool = False,
    reassigning: bool = False,
    digitizer_name: Optional[str] = None,
    vendor_name: Optional[str] = None,
) -> Optional[tuple[str, Role]]:
    """Итоговый текст служебной заметки и ее аудитория. None — заметку не добавлять.

    fully_shipped не None означает, что запрос был отгрузкой.
    """
    text = (free_text or "").strip()

    if fully_shipped is not None:
        head = "Order fully shipped." if fully_shipped else "Order partially shipped."
        content, target = _with_suffix(head, text, " "), Role.VENDOR
    elif (
        new_status == OrderStatus.AT_DIGITIZER
        and not rejection
        and (previous != OrderStatus.AT_DIGITIZER or reassigning)
    ):
        content = _with_suffix(f"Assigned to {digitizer_name or 'Digitizer'}", text, "\n")
        target = Role.DIGITIZER
    elif new_status == OrderStatus.AT_VENDOR and previous != OrderStatus.AT_VENDOR:
        content, target = _with_suffix(f"Sent to {vendor_name or 'Vendor'}", text, "\n"), Role.VENDOR
    elif previous == OrderStatus.AT_DIGITIZER and new_status == OrderStatus.TEAM_REVIEW:
        content, target = strip_design_complete(text), Role.DIGITIZER
    elif previous == OrderStatus.AT_VENDOR and new_status == OrderStatus.OUT_FOR_DELIVERY:
        content, target = text, Role.VENDOR
    else:
        content, target = text, Role.TEAM

    if not content:
        return None
    return content, target
