import logging

from flowtrack.domain.models import Order, Actor, Role
from flowtrack.domain.exceptions import OrderNotFoundError
from flowtrack.domain.notes import add_note, edit_note


logger = logging.getLogger(__name__)


class AddOrderNoteUseCase:
    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self, order_id: str, content: str, actor: Actor, target_role: Role = Role.TEAM) -> Order:
        async with self._uow() as uow:
            stored = await uow.orders.get_by_id(order_id)
            if not stored:
                raise OrderNotFoundError(order_id)

            order = stored.model_copy(deep=True)
            note = add_note(order, content, actor, target_role)
            updated = await uow.orders.update(order, expected_version=stored.version)
            await uow.commit()

        logger.info(f"Заметка {note.id} добавлена к заказу {order_id} ({actor.role.value} -> {target_role.value})")
        return updated


class EditOrderNoteUseCase:
    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self, order_id: str, note_id: str, content: str, actor: Actor) -> Order:
        async with self._uow() as uow:
            stored = await uow.orders.get_by_id(order_id)
            if not stored:
                raise OrderNotFoundError(order_id)

            order = stored.model_copy(deep=True)
            edit_note(order, note_id, content, actor)
            updated = await uow.orders.update(order, expected_version=stored.version)
            await uow.commit()

        logger.info(f"Заметка {note_id} заказа {order_id} отредактирована ({actor.role.value} {actor.id})")
        return updated
