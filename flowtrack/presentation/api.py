from typing import List, Optional
from fastapi import APIRouter, Depends, File, Form, Header, HTTPException, Request, UploadFile, status
from fastapi.responses import StreamingResponse

from flowtrack.presentation.schemas import (
    CreateOrderRequest, AddNoteRequest, EditNoteRequest, OrderResponse, SyncResponse, ErrorResponse
)
from flowtrack.application.create_order import CreateOrderUseCase, parse_new_order
from flowtrack.application.get_order import GetOrderUseCase, ListOrdersUseCase
from flowtrack.application.update_order_status import UpdateOrderStatusUseCase, TransitionRequestDTO, NewFile
from flowtrack.application.manage_notes import AddOrderNoteUseCase, EditOrderNoteUseCase
from flowtrack.application.manage_attachments import DeleteOrderAttachmentUseCase, DownloadAttachmentUseCase
from flowtrack.application.import_orders import SyncExternalOrdersUseCase
from flowtrack.domain.models import Actor, OrderStatus, Priority, Role
from flowtrack.domain.ledger import parse_shipped_items
from flowtrack.domain.exceptions import (
    DomainException, NotFoundError, ConflictError, ForbiddenError, InvalidArgumentError,
    UploadError, OrderFeedError
)
from flowtrack.infrastructure.unit_of_work import UnitOfWork
from flowtrack.config import settings

router = APIRouter()

_ERROR_STATUS = (
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (ConflictError, status.HTTP_409_CONFLICT),
    (ForbiddenError, status.HTTP_403_FORBIDDEN),
    (InvalidArgumentError, status.HTTP_400_BAD_REQUEST),
    (UploadError, status.HTTP_502_BAD_GATEWAY),
    (OrderFeedError, status.HTTP_502_BAD_GATEWAY),
)

_ERRORS = {
    400: {"model": ErrorResponse}, 403: {"model": ErrorResponse}, 404: {"model": ErrorResponse},
    409: {"model": ErrorResponse}, 502: {"model": ErrorResponse},
}


def _http_error(e: DomainException) -> HTTPException:
    for exc_type, code in _ERROR_STATUS:
        if isinstance(e, exc_type):
            return HTTPException(status_code=code, detail=str(e))
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))


def get_current_user(
    x_user_id: Optional[str] = Header(None),
    x_user_name: Optional[str] = Header(None),
    x_user_email: Optional[str] = Header(None),
    x_user_role: Optional[str] = Header(None),
) -> Actor:
    """Пользователь приходит от auth-шлюза в заголовках, ему доверяем полностью"""
    if not x_user_id or not x_user_name or not x_user_role:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authorized, no user identity")
    try:
        role = Role(x_user_role)
    except ValueError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=f"Unknown role: {x_user_role}")
    return Actor(id=x_user_id, name=x_user_name, email=x_user_email or "", role=role)


# Фабрики для создания use cases
def get_uow(request: Request) -> UnitOfWork:
    return UnitOfWork(request.app.state.session_factory)


def get_list_orders_use_case(uow: UnitOfWork = Depends(get_uow)):
    return ListOrdersUseCase(uow)


def get_get_order_use_case(uow: UnitOfWork = Depends(get_uow)):
    return GetOrderUseCase(uow)


def get_create_order_use_case(uow: UnitOfWork = Depends(get_uow)):
    return CreateOrderUseCase(uow)


def get_update_status_use_case(request: Request, uow: UnitOfWork = Depends(get_uow)):
    return UpdateOrderStatusUseCase(uow, request.app.state.blob_store, settings.UPLOAD_TIMEOUT_SECONDS)


def get_add_note_use_case(uow: UnitOfWork = Depends(get_uow)):
    return AddOrderNoteUseCase(uow)


def get_edit_note_use_case(uow: UnitOfWork = Depends(get_uow)):
    return EditOrderNoteUseCase(uow)


def get_delete_attachment_use_case(uow: UnitOfWork = Depends(get_uow)):
    return DeleteOrderAttachmentUseCase(uow)


def get_download_attachment_use_case(request: Request, uow: UnitOfWork = Depends(get_uow)):
    return DownloadAttachmentUseCase(uow, request.app.state.blob_store)


def get_sync_use_case(request: Request, uow: UnitOfWork = Depends(get_uow)):
    return SyncExternalOrdersUseCase(uow, request.app.state.order_feed)


@router.get("/orders", response_model=List[OrderResponse])
async def list_orders(
    actor: Actor = Depends(get_current_user),
    use_case: ListOrdersUseCase = Depends(get_list_orders_use_case)
):
    """Все заказы, новые первыми"""
    try:
        orders = await use_case(newest_first=True)
    except DomainException as e:
        raise _http_error(e)
    return [OrderResponse.from_domain(o) for o in orders]


@router.post(
    "/orders",
    response_model=OrderResponse,
    responses=_ERRORS,
    status_code=status.HTTP_201_CREATED
)
async def create_order(
    request: CreateOrderRequest,
    actor: Actor = Depends(get_current_user),
    use_case: CreateOrderUseCase = Depends(get_create_order_use_case)
):
    """Создать заказ вручную (статус At Team)"""
    try:
        order = await use_case(parse_new_order(request.model_dump()))
    except DomainException as e:
        raise _http_error(e)
    return OrderResponse.from_domain(order)


@router.post("/orders/sync", response_model=SyncResponse, responses=_ERRORS)
async def sync_orders(
    actor: Actor = Depends(get_current_user),
    use_case: SyncExternalOrdersUseCase = Depends(get_sync_use_case)
):
    """Импорт открытых заказов из внешнего фида"""
    try:
        result = await use_case()
    except DomainException as e:
        raise _http_error(e)

    if result.imported:
        message = f"Successfully imported {len(result.imported)} new orders."
    elif result.skipped:
        message = "All recent orders are already in FlowTrack."
    else:
        message = "No new open orders to import."
    return SyncResponse(
        message=message,
        imported_orders=[OrderResponse.from_domain(o) for o in result.imported],
        skipped=result.skipped,
    )


@router.get("/orders/{order_id}", response_model=OrderResponse, responses=_ERRORS)
async def get_order(
    order_id: str,
    actor: Actor = Depends(get_current_user),
    use_case: GetOrderUseCase = Depends(get_get_order_use_case)
):
    """Получить заказ по ID"""
    try:
        order = await use_case(order_id)
    except DomainException as e:
        raise _http_error(e)
    return OrderResponse.from_domain(order)


@router.put("/orders/{order_id}/status", response_model=OrderResponse, responses=_ERRORS)
async def update_order_status(
    order_id: str,
    new_status: OrderStatus = Form(..., alias="status"),
    note: Optional[str] = Form(None),
    is_rejection: Optional[bool] = Form(None),
    digitizer_id: Optional[str] = Form(None),
    digitizer_name: Optional[str] = Form(None),
    vendor_id: Optional[str] = Form(None),
    vendor_name: Optional[str] = Form(None),
    priority: Optional[Priority] = Form(None),
    digitizer_status: Optional[str] = Form(None),
    vendor_status: Optional[str] = Form(None),
    shipped_items: Optional[str] = Form(None),
    expected_version: Optional[int] = Form(None),
    uploaded_by: Optional[Role] = Form(None),
    attachment_files: Optional[List[UploadFile]] = File(None),
    actor: Actor = Depends(get_current_user),
    use_case: UpdateOrderStatusUseCase = Depends(get_update_status_use_case)
):
    """Смена статуса заказа вместе с файлами, заметкой и отгрузкой"""
    attachment_files = attachment_files or []
    if len(attachment_files) > settings.MAX_UPLOAD_FILES:
        raise HTTPException(status_code=400, detail=f"At most {settings.MAX_UPLOAD_FILES} files can be uploaded at once.")

    files = []
    for upload in attachment_files:
        content = await upload.read()
        if len(content) > settings.MAX_UPLOAD_BYTES:
            raise HTTPException(status_code=400, detail=f"File {upload.filename} exceeds the upload size limit.")
        files.append(NewFile(filename=upload.filename or "file", content=content))

    try:
        dto = TransitionRequestDTO(
            status=new_status,
            note=note,
            is_rejection=is_rejection,
            digitizer_id=digitizer_id,
            digitizer_name=digitizer_name,
            vendor_id=vendor_id,
            vendor_name=vendor_name,
            priority=priority,
            digitizer_status=digitizer_status,
            vendor_status=vendor_status,
            shipped_items=parse_shipped_items(shipped_items),
            expected_version=expected_version,
            uploaded_by=uploaded_by,
        )
        order = await use_case(order_id, dto, actor, files)
    except DomainException as e:
        raise _http_error(e)
    return OrderResponse.from_domain(order)


@router.post("/orders/{order_id}/notes", response_model=OrderResponse, responses=_ERRORS)
async def add_order_note(
    order_id: str,
    request: AddNoteRequest,
    actor: Actor = Depends(get_current_user),
    use_case: AddOrderNoteUseCase = Depends(get_add_note_use_case)
):
    try:
        order = await use_case(order_id, request.content, actor, request.target_role)
    except DomainException as e:
        raise _http_error(e)
    return OrderResponse.from_domain(order)


@router.put("/orders/{order_id}/notes/{note_id}", response_model=OrderResponse, responses=_ERRORS)
async def edit_order_note(
    order_id: str,
    note_id: str,
    request: EditNoteRequest,
    actor: Actor = Depends(get_current_user),
    use_case: EditOrderNoteUseCase = Depends(get_edit_note_use_case)
):
    try:
        order = await use_case(order_id, note_id, request.content, actor)
    except DomainException as e:
        raise _http_error(e)
    return OrderResponse.from_domain(order)


@router.delete("/orders/{order_id}/attachments/{attachment_id}", response_model=OrderResponse, responses=_ERRORS)
async def delete_order_attachment(
    order_id: str,
    attachment_id: str,
    actor: Actor = Depends(get_current_user),
    use_case: DeleteOrderAttachmentUseCase = Depends(get_delete_attachment_use_case)
):
    try:
        order = await use_case(order_id, attachment_id, actor)
    except DomainException as e:
        raise _http_error(e)
    return OrderResponse.from_domain(order)


@router.get("/orders/{order_id}/attachments/{attachment_id}/download", responses=_ERRORS)
async def download_order_attachment(
    order_id: str,
    attachment_id: str,
    actor: Actor = Depends(get_current_user),
    use_case: DownloadAttachmentUseCase = Depends(get_download_attachment_use_case)
):
    try:
        attachment, chunks = await use_case(order_id, attachment_id)
        # Первый чанк читаем до ответа, чтобы ошибка хранилища стала HTTP-ошибкой
        first = await anext(chunks, b"")
    except DomainException as e:
        raise _http_error(e)

    async def body():
        yield first
        async for chunk in chunks:
            yield chunk

    return StreamingResponse(
        body(),
        media_type="application/octet-stream",
        headers={"Content-Disposition": f'attachment; filename="{attachment.name}"'},
    )
