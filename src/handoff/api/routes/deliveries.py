"""Delivery lifecycle endpoints."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, status

from ...errors import HandoffError
from ...persistence.repository import DeliveryRepository
from ...schemas.deliveries import CancelRequest, CompleteRequest, ConfirmationResponse, DeliveryResponse
from ...services.lifecycle.state_machine import DeliveryStateMachine
from ..dependencies import get_repository, get_state_machine
from ..errors import http_error

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/deliveries", tags=["deliveries"])


@router.get("/{delivery_id}", response_model=DeliveryResponse, status_code=status.HTTP_200_OK)
def get_delivery(delivery_id: str, repository: DeliveryRepository = Depends(get_repository)) -> DeliveryResponse:
    try:
        return DeliveryResponse.from_domain(repository.get_delivery(delivery_id))
    except HandoffError as exc:
        raise http_error(exc) from exc


@router.post("/{delivery_id}/start", response_model=DeliveryResponse, status_code=status.HTTP_200_OK)
def start_delivery(
    delivery_id: str, machine: DeliveryStateMachine = Depends(get_state_machine)
) -> DeliveryResponse:
    try:
        return DeliveryResponse.from_domain(machine.start(delivery_id))
    except HandoffError as exc:
        raise http_error(exc) from exc


@router.post("/{delivery_id}/arrive", response_model=DeliveryResponse, status_code=status.HTTP_200_OK)
def arrive_delivery(
    delivery_id: str, machine: DeliveryStateMachine = Depends(get_state_machine)
) -> DeliveryResponse:
    try:
        return DeliveryResponse.from_domain(machine.arrive(delivery_id))
    except HandoffError as exc:
        raise http_error(exc) from exc


@router.post("/{delivery_id}/complete", response_model=DeliveryResponse, status_code=status.HTTP_200_OK)
def complete_delivery(
    delivery_id: str,
    payload: CompleteRequest | None = None,
    machine: DeliveryStateMachine = Depends(get_state_machine),
) -> DeliveryResponse:
    payload = payload or CompleteRequest()
    try:
        delivery = machine.complete(
            delivery_id,
            notes=payload.notes,
            rating=payload.rating,
            feedback=payload.feedback,
        )
        return DeliveryResponse.from_domain(delivery)
    except HandoffError as exc:
        raise http_error(exc) from exc
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc


@router.post("/{delivery_id}/cancel", response_model=DeliveryResponse, status_code=status.HTTP_200_OK)
def cancel_delivery(
    delivery_id: str,
    payload: CancelRequest | None = None,
    machine: DeliveryStateMachine = Depends(get_state_machine),
) -> DeliveryResponse:
    reason = payload.reason if payload else None
    try:
        return DeliveryResponse.from_domain(machine.cancel(delivery_id, reason))
    except HandoffError as exc:
        raise http_error(exc) from exc


@router.post("/{delivery_id}/confirmation", response_model=ConfirmationResponse, status_code=status.HTTP_200_OK)
def resume_confirmation(
    delivery_id: str, machine: DeliveryStateMachine = Depends(get_state_machine)
) -> ConfirmationResponse:
    """Open the confirmation request of a completed delivery, or return the open one."""
    try:
        return ConfirmationResponse.from_domain(machine.resume_confirmation(delivery_id))
    except HandoffError as exc:
        raise http_error(exc) from exc
    except Exception as exc:
        logger.exception(f"Error opening confirmation for delivery {delivery_id}: {exc}")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"Failed to open confirmation request: {exc}",
        ) from exc
