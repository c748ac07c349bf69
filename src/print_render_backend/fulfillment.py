"""
Webhook-level order handling.

OrderFulfiller turns a render-complete webhook into delivered documents:
the order pipeline produces one merged PDF per project, then every
successful project is valued, recorded in the ledger and handed to the
delivery client. Delivery for a project starts only after its file has been
persisted.
"""

from __future__ import annotations

import logging
from typing import List, Optional, Tuple

from .delivery import DeliveryClient, DeliveryDetails
from .errors import DeliveryError
from .ledger import MoneyLedger
from .models import ErrorDetail, OrderStatus, ProjectOutcome, ProjectPayload, WebhookPayload, WebhookResponse
from .pipeline import OrderPipeline, ProjectResult, derive_status

logger = logging.getLogger(__name__)

MAGAZINE_FAMILY_ID = 296

HTTP_STATUS_BY_ORDER_STATUS = {
    OrderStatus.SUCCESS: 200,
    OrderStatus.PARTIAL: 207,
    OrderStatus.FAILURE: 500,
}


class InvalidPayloadError(ValueError):
    """The webhook body is structurally unusable (no projects, no order reference)."""


def resolve_order_number(payload: WebhookPayload) -> str:
    """
    Order reference used for filenames, ledger rows and messages.

    The renderer puts the shop's order reference on each project; the
    top-level ``order`` field is only a fallback.
    """
    if not payload.projects:
        raise InvalidPayloadError("Missing or empty projects array in webhook payload")

    first = payload.projects[0]
    if first.order is not None and first.order.reference:
        return str(first.order.reference)

    order = payload.order
    if isinstance(order, dict):
        order = order.get("number") or order.get("reference")
    if order is None or str(order).strip() == "":
        raise InvalidPayloadError("Missing order field in webhook payload")
    return str(order)


def is_magazine(project: ProjectPayload) -> bool:
    if project.order is None or project.id is None:
        return False
    return any(
        str(item.id) == str(project.id) and item.family_id == MAGAZINE_FAMILY_ID
        for item in project.order.projects
    )


def display_identifier(order_number: str, project_index: int, project_count: int, magazine: bool = False) -> str:
    identifier = f"{order_number}-{project_index}" if project_count > 1 else order_number
    return f"{identifier} MAGAZINE" if magazine else identifier


def compute_order_value(page_count: Optional[int], magazine: bool = False) -> float:
    """
    Value of one project, based on the pages document only (cover excluded).

    Magazines cost 20 plus 10 per page. A standard 24-page book is a flat
    450; other books are 350 plus 6 per page.
    """
    pages = page_count if isinstance(page_count, int) else 0
    if magazine:
        return 20 + pages * 10
    if pages == 24:
        return 450
    return 350 + pages * 6


class OrderFulfiller:
    def __init__(self, order_pipeline: OrderPipeline, ledger: MoneyLedger, delivery: DeliveryClient) -> None:
        self.order_pipeline = order_pipeline
        self.ledger = ledger
        self.delivery = delivery

    def process(self, payload: WebhookPayload) -> Tuple[WebhookResponse, int]:
        """
        Process every project of a webhook payload.

        Returns:
            The response body and the HTTP status for it: 200 when every
            project was delivered, 207 when some were, 500 when none were

        Raises:
            InvalidPayloadError: If the payload has no projects or no order reference
        """
        order_number = resolve_order_number(payload)
        order_result = self.order_pipeline.run(payload.projects, order_number)
        project_count = len(payload.projects)

        outcomes: List[ProjectOutcome] = []
        for project, result in zip(payload.projects, order_result.results):
            outcomes.append(self._fulfil(project, result, order_number, project_count))

        status = derive_status(outcome.status == "success" for outcome in outcomes)
        response = WebhookResponse(
            success=status is not OrderStatus.FAILURE,
            order_id=order_number,
            status=status,
            results=[outcome for outcome in outcomes if outcome.status == "success"],
            errors=[outcome for outcome in outcomes if outcome.status != "success"],
        )
        return response, HTTP_STATUS_BY_ORDER_STATUS[status]

    def _fulfil(self, project: ProjectPayload, result: ProjectResult, order_number: str, project_count: int) -> ProjectOutcome:
        magazine = is_magazine(project)
        outcome = result.to_outcome().model_copy(update={"is_magazine": magazine})
        if not result.succeeded or result.path is None:
            return outcome

        index = result.project_index or 1
        display_id = display_identifier(order_number, index, project_count, magazine)
        order_value = compute_order_value(result.page_count, magazine)
        outcome = outcome.model_copy(update={"order_value": order_value})

        try:
            self.ledger.append(display_id, order_value)
            total = self.ledger.total()
        except OSError as exc:
            # Ledger failures never block delivery
            logger.warning(f"Ledger update failed for {display_id}: {exc}")
            total = order_value
        details = DeliveryDetails(page_count=result.page_count or 0, order_value=order_value, total=total)

        try:
            self.delivery.send_document(result.path, display_id, details)
        except DeliveryError as exc:
            logger.error(f"Delivery failed for project {project.id} of order {order_number}: {exc.message}")
            return outcome.model_copy(update={"status": "failed", "error": ErrorDetail(**exc.to_dict())})

        logger.info(
            f"Successfully processed project {project.id} ({index}/{project_count}) for order {order_number}"
            f"{' [MAGAZINE]' if magazine else ''}"
        )
        return outcome
