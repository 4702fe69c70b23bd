"""
Предложения альтернативного времени от исполнителя

Исполнитель предлагает одну или несколько пар дата/время (и, возможно, цену),
пока бронь в статусе pending. Клиент выбирает одно предложение: оно становится
accepted, остальные rejected, дата/время/цена переносятся в бронь, и бронь
переходит в confirmed.
"""
import logging
from typing import Optional

from core.database import SessionFactory, session_scope
from core.errors import ConflictError, NotFoundError, PermissionDeniedError, ValidationError
from schemas.booking import (
    ActorRole,
    BookingResponse,
    ProposalItem,
    ProposalResponse,
    ProposalStatus,
)
from schemas.events import ProposalAccepted, ProposalOffered

from booking_service.events import EventBus
from booking_service.lifecycle import BookingLifecycle, Trigger, check_transition
from booking_service.pricing import split_customer_price
from booking_service.repository import AuditRepository, BookingRepository, ProposalRepository
from booking_service.tables import Booking, BookingProposal

logger = logging.getLogger(__name__)


def proposal_price(proposal: BookingProposal, booking: Booking) -> int:
    """Итоговая цена для клиента по предложению: цена предложения, если задана, иначе цена брони"""
    return proposal.proposed_price if proposal.proposed_price is not None else booking.price_total


def proposal_performer_net(proposal: BookingProposal, booking: Booking) -> int:
    """Сколько исполнитель получит на руки, если клиент выберет это предложение"""
    if proposal.proposed_price is None:
        return booking.performer_payment
    return split_customer_price(proposal_price(proposal, booking), booking.commission_rate).performer_payment


def to_response(proposal: BookingProposal, booking: Booking) -> ProposalResponse:
    response = ProposalResponse.model_validate(proposal)
    response.performer_net = proposal_performer_net(proposal, booking)
    return response


class ProposalService:

    def __init__(self, session_factory: SessionFactory, lifecycle: BookingLifecycle, event_bus: EventBus):
        self.session_factory = session_factory
        self.lifecycle = lifecycle
        self.event_bus = event_bus

    def propose(self, booking_id: str, performer_id: str, items: list[ProposalItem]) -> list[ProposalResponse]:
        if not items:
            raise ValidationError("Добавьте хотя бы один вариант")
        for item in items:
            if item.proposed_price is not None and item.proposed_price <= 0:
                raise ValidationError("Цена предложения должна быть положительной")

        with session_scope(self.session_factory) as db:
            booking = BookingRepository.get_or_raise(db, booking_id)
            check_transition(booking, Trigger.PROPOSE, performer_id, ActorRole.PERFORMER)

            proposals = ProposalRepository.add_many(
                db,
                [
                    BookingProposal(
                        booking_id=booking.id,
                        proposed_date=item.proposed_date,
                        proposed_time=item.proposed_time,
                        proposed_price=item.proposed_price,
                        status=ProposalStatus.PENDING.value,
                    )
                    for item in items
                ],
            )
            AuditRepository.append(
                db,
                user_id=performer_id,
                action="proposals_offered",
                entity_type="booking",
                entity_id=booking.id,
                details={"count": len(proposals)},
            )
            result = [to_response(p, booking) for p in proposals]

        logger.info(f"📅 Исполнитель предложил {len(result)} вариант(ов) для брони {booking_id}")
        self.event_bus.publish(ProposalOffered(booking_id=booking_id, proposal_ids=[p.id for p in result]))
        return result

    def list_proposals(self, booking_id: str, status: Optional[ProposalStatus] = None) -> list[ProposalResponse]:
        with session_scope(self.session_factory) as db:
            booking = BookingRepository.get_or_raise(db, booking_id)
            proposals = ProposalRepository.list_for_booking(db, booking_id, status.value if status else None)
            return [to_response(p, booking) for p in proposals]

    def accept_proposal(self, proposal_id: str, customer_id: str) -> BookingResponse:
        with session_scope(self.session_factory) as db:
            proposal = ProposalRepository.get(db, proposal_id)
            if not proposal:
                raise NotFoundError(f"Предложение {proposal_id} не найдено")
            booking = proposal.booking
            if proposal.status != ProposalStatus.PENDING.value:
                raise ConflictError()

            values = {}
            if proposal.proposed_price is not None:
                # цена предложения становится ценой брони, доли считаем по комиссии брони
                pricing = split_customer_price(proposal.proposed_price, booking.commission_rate)
                values = {
                    "price_total": pricing.customer_price,
                    "prepayment_amount": pricing.prepayment,
                    "performer_payment": pricing.performer_payment,
                }

            status_event = self.lifecycle.apply_transition(
                db,
                booking,
                Trigger.ACCEPT_PROPOSAL,
                customer_id,
                ActorRole.CUSTOMER,
                booking_date=proposal.proposed_date,
                booking_time=proposal.proposed_time,
                **values,
            )
            if not ProposalRepository.accept_exclusive(db, booking.id, proposal.id):
                raise ConflictError()
            result = BookingResponse.model_validate(booking)

        logger.info(f"🤝 Клиент принял предложение {proposal_id} по брони {result.id}")
        self.event_bus.publish(
            ProposalAccepted(
                booking_id=result.id,
                proposal_id=proposal_id,
                booking_date=result.booking_date,
                booking_time=result.booking_time,
                price_total=result.price_total,
            )
        )
        self.event_bus.publish(status_event)
        return result

    def reject_all_proposals(self, booking_id: str, customer_id: str) -> int:
        """Клиент отклонил все варианты; бронь остаётся pending до решения исполнителя"""
        with session_scope(self.session_factory) as db:
            booking = BookingRepository.get_or_raise(db, booking_id)
            if booking.customer_id != customer_id:
                raise PermissionDeniedError("Это бронирование другого клиента")
            rejected = ProposalRepository.reject_pending(db, booking_id)
            AuditRepository.append(
                db,
                user_id=customer_id,
                action="proposals_rejected",
                entity_type="booking",
                entity_id=booking_id,
                details={"count": rejected},
            )
        logger.info(f"🚫 Клиент отклонил {rejected} предложений по брони {booking_id}")
        return rejected
