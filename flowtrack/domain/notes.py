import uuid
from datetime import datetime
from typing import Optional

from flowtrack.domain.models import Order, Note, Actor, AssociatedUser, Role, PRIVILEGED_ROLES, utcnow
from flowtrack.domain.exceptions import NoteNotFoundError, ForbiddenError, InvalidArgumentError


def new_note_id() -> str:
    return f"note-{uuid.uuid4().hex[:12]}"


def associate_user(order: Order, actor: Actor) -> bool:
    """Добавляет пользователя в associated_users, если его там нет. True — если добавлен."""
    if order.is_associated(actor.id):
        return False
    order.associated_users.append(AssociatedUser.from_actor(actor))
    return True


def add_note(
    order: Order,
    content: str,
    author: Actor,
    target_role: Role,
    timestamp: Optional[datetime] = None,
) -> Note:
    if not content or not content.strip():
        raise InvalidArgumentError("Note content is required.")
    note = Note(
        id=new_note_id(),
        content=content,
        author_name=author.name,
        author_role=author.role,
        target_role=target_role,
        timestamp=timestamp or utcnow(),
    )
    order.notes.append(note)
    associate_user(order, author)
    return note


def can_edit_note(note: Note, actor: Actor) -> bool:
    """Бизнес-правило: редактирует автор, либо Team/Admin — заметки команды"""
    is_author = note.author_name == actor.name and note.author_role == actor.role
    return is_author or (actor.role in PRIVILEGED_ROLES and note.author_role == Role.TEAM)


def edit_note(order: Order, note_id: str, new_content: str, actor: Actor) -> Note:
    note = order.find_note(note_id)
    if note is None:
        raise NoteNotFoundError(note_id)
    if not can_edit_note(note, actor):
        raise ForbiddenError(
            f"{actor.role.value} ({actor.name}) is not allowed to edit a note written by "
            f"{note.author_role.value} ({note.author_name})."
        )
    if not new_content or not new_content.strip():
        raise InvalidArgumentError("Note content is required.")
    note.content = new_content
    note.is_edited = True
    return note
