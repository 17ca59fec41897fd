# vitrine_app/services/payments.py
# -*- coding: utf-8 -*-
"""Orquestração do ciclo de vida de um pagamento PIX.

pending -> approved | failed | cancelled (todos terminais). A aprovação e a
entrega do item ao usuário são gravadas no mesmo commit.
"""
from __future__ import annotations
import uuid
from datetime import datetime, timedelta
from decimal import Decimal, InvalidOperation

from flask import current_app
from sqlalchemy import and_, or_, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ..errors import (
    DuplicatePendingPayment,
    EntitlementGrantFailure,
    InvalidInput,
    InvalidTransition,
    NotFound,
    PaymentError,
    ProviderUnavailable,
)
from ..extensions import db
from ..models import Payment, PaymentStatus, Project, User
from ..timeutils import utcnow
from . import entitlements, fallback_pix
from .providers import PayerInfo, get_provider, normalize_status
from .settings import load_payment_settings

CENTS = Decimal("0.01")
# limite da coluna Numeric(10,2)
MAX_AMOUNT = Decimal("99999999.99")


def parse_amount(raw) -> Decimal:
    if raw is None or raw == "" or isinstance(raw, bool):
        raise InvalidInput("Valor da cobrança é obrigatório")
    try:
        amount = Decimal(str(raw).strip().replace(",", "."))
    except InvalidOperation:
        raise InvalidInput("Valor da cobrança inválido", amount=str(raw))
    if not amount.is_finite() or amount <= 0:
        raise InvalidInput("Valor da cobrança deve ser maior que zero", amount=str(raw))
    if amount > MAX_AMOUNT:
        raise InvalidInput("Valor da cobrança acima do limite", amount=str(raw), max=str(MAX_AMOUNT))
    amount = amount.quantize(CENTS)
    # o arredondamento pode zerar (0.001) ou passar do limite (99999999.995)
    if amount <= 0 or amount > MAX_AMOUNT:
        raise InvalidInput("Valor da cobrança fora da faixa aceita", amount=str(raw))
    return amount


def new_correlation_id() -> str:
    return uuid.uuid4().hex


class PaymentOrchestrator:
    def __init__(self, settings_loader=load_payment_settings, provider_factory=get_provider,
                 fallback=fallback_pix.generate, clock=utcnow, grant_retries: int = 3):
        self.settings_loader = settings_loader
        self.provider_factory = provider_factory
        self.fallback = fallback
        self.clock = clock
        self.grant_retries = max(1, int(grant_retries))

    # ------------------------------------------------------------------
    # criação
    # ------------------------------------------------------------------
    def create_payment(self, user_id: int | None = None, item_id: int | None = None, *,
                       amount=None, description: str | None = None,
                       payer: PayerInfo | None = None) -> tuple[Payment, dict]:
        log = current_app.logger
        user, project = self._resolve(user_id, item_id)

        if project is not None:
            value = Decimal(project.price or 0).quantize(CENTS)
            if value <= 0:
                raise InvalidInput("Projeto sem preço definido", itemId=project.id)
            description = description or f"Pagamento - {project.title}"
        else:
            value = parse_amount(amount)
            description = description or "Cobrança"

        if user is not None and project is not None:
            if entitlements.owns(user.id, project.id):
                raise InvalidInput("Usuário já possui este projeto", itemId=project.id)
            self._release_or_reject_pending(user.id, project.id)

        if payer is None:
            payer = PayerInfo(name=user.name, email=user.email, document=user.document or "") \
                if user is not None else PayerInfo()

        # a intenção de pagar é gravada antes de qualquer chamada externa
        payment = Payment(
            correlation_id=new_correlation_id(),
            user_id=user.id if user else None,
            project_id=project.id if project else None,
            amount=value,
            status=PaymentStatus.PENDING,
            method="pix",
            description=description[:255],
            customer_name=None if user else payer.name,
            customer_email=None if user else payer.email,
            customer_phone=None if user else (payer.phone or None),
        )
        db.session.add(payment)
        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            existing = self._pending_for(user_id, item_id)
            if existing is None:
                raise
            log.warning("duplicate pending payment (race) user=%s item=%s existing=%s",
                        user_id, item_id, existing.id)
            raise DuplicatePendingPayment("Já existe um pagamento pendente para este projeto", existing.id)

        log.info("payment created id=%s correlation=%s user=%s item=%s amount=%s",
                 payment.id, payment.correlation_id, payment.user_id, payment.project_id, value)

        pix = self._issue_pix(payment, description, payer)
        return payment, pix

    def _issue_pix(self, payment: Payment, description: str, payer: PayerInfo) -> dict:
        log = current_app.logger
        settings = self.settings_loader()
        now = self.clock()
        try:
            provider = self.provider_factory(settings)
            if provider is None:
                raise ProviderUnavailable("Provedor desativado (modo fallback)")
            charge = provider.request_pix_charge(payment.amount, description, payment.correlation_id, payer)
        except ProviderUnavailable as exc:
            log.warning("provider unavailable payment=%s correlation=%s: %s",
                        payment.id, payment.correlation_id, exc.message)
            demo = self.fallback(payment.amount, payment.correlation_id, now=now,
                                 minutes=settings.expiration_minutes,
                                 qr_template=settings.fallback_qr_url)
            payment.pix_code = demo.pix_code
            payment.qr_code_url = demo.qr_code_url
            payment.expires_at = demo.expires_at
            payment.provider = "fallback"
            db.session.commit()
            log.info("fallback pix issued payment=%s expires=%s", payment.id, payment.expires_at)
            pix = payment.pix_payload()
            pix["warning"] = "Usando sistema de fallback"
            return pix

        expires_at = charge.expires_at
        if expires_at <= now:
            expires_at = now + timedelta(minutes=settings.expiration_minutes)
        payment.pix_code = charge.pix_code
        payment.qr_code_url = charge.qr_code_url
        payment.expires_at = expires_at
        payment.provider = charge.provider
        payment.provider_ref = charge.provider_ref
        db.session.commit()
        log.info("provider pix issued payment=%s provider=%s ref=%s",
                 payment.id, charge.provider, charge.provider_ref)
        return payment.pix_payload()

    def _resolve(self, user_id, item_id) -> tuple[User | None, Project | None]:
        user = project = None
        if user_id is not None:
            user = db.session.get(User, user_id)
            if user is None:
                raise NotFound("Usuário não encontrado", userId=user_id)
            if user.active is False:
                raise InvalidInput("Usuário inativo", userId=user_id)
        if item_id is not None:
            project = db.session.get(Project, item_id)
            if project is None:
                raise NotFound("Projeto não encontrado", itemId=item_id)
            if not project.active:
                raise InvalidInput("Projeto indisponível", itemId=item_id)
        return user, project

    def _pending_for(self, user_id, item_id) -> Payment | None:
        if user_id is None or item_id is None:
            return None
        return Payment.query.filter_by(
            user_id=user_id, project_id=item_id, status=PaymentStatus.PENDING
        ).first()

    def _is_stale(self, payment: Payment, now: datetime) -> bool:
        if payment.expires_at is not None:
            return payment.expires_at <= now
        # gravado sem PIX (queda entre a gravação e o provedor)
        return payment.created_at is not None and payment.created_at + self._window() <= now

    def _window(self) -> timedelta:
        return timedelta(minutes=self.settings_loader().expiration_minutes)

    def _release_or_reject_pending(self, user_id: int, item_id: int) -> None:
        existing = self._pending_for(user_id, item_id)
        if existing is None:
            return
        if not self._is_stale(existing, self.clock()):
            current_app.logger.warning("duplicate pending payment user=%s item=%s existing=%s",
                                       user_id, item_id, existing.id)
            raise DuplicatePendingPayment("Já existe um pagamento pendente para este projeto", existing.id)
        self._transition(existing.id, PaymentStatus.CANCELLED)
        current_app.logger.info("payment expired id=%s user=%s item=%s", existing.id, user_id, item_id)

    # ------------------------------------------------------------------
    # consulta
    # ------------------------------------------------------------------
    def get_payment(self, payment_id: int) -> Payment:
        payment = db.session.get(Payment, payment_id)
        if payment is None:
            raise NotFound("Pagamento não encontrado", paymentId=payment_id)
        return payment

    def get_status(self, payment_id: int) -> dict:
        """Somente leitura; um PIX vencido continua "pending" até a próxima escrita."""
        payment = self.get_payment(payment_id)
        return {"status": payment.status, "isValid": payment.is_valid(self.clock())}

    # ------------------------------------------------------------------
    # transições
    # ------------------------------------------------------------------
    def mark_approved(self, payment_id: int, paid_at: datetime | None = None) -> Payment:
        paid_at = paid_at or self.clock()
        last_error = None
        for attempt in range(1, self.grant_retries + 1):
            try:
                return self._approve_once(payment_id, paid_at)
            except PaymentError:
                db.session.rollback()
                raise
            except SQLAlchemyError as exc:
                db.session.rollback()
                last_error = exc
                current_app.logger.exception(
                    "approval/entitlement failed payment=%s attempt=%s/%s",
                    payment_id, attempt, self.grant_retries,
                )
        raise EntitlementGrantFailure(
            "Falha ao entregar o projeto; pagamento mantido como pendente",
            paymentId=payment_id, cause=str(last_error),
        )

    def _approve_once(self, payment_id: int, paid_at: datetime) -> Payment:
        payment = self.get_payment(payment_id)
        if payment.status == PaymentStatus.APPROVED:
            return payment
        if payment.is_terminal:
            raise InvalidTransition(
                f"Pagamento já está {payment.status}", paymentId=payment_id, status=payment.status
            )

        result = db.session.execute(
            update(Payment)
            .where(Payment.id == payment_id, Payment.status == PaymentStatus.PENDING)
            .values(status=PaymentStatus.APPROVED, paid_at=paid_at, updated_at=self.clock())
        )
        if result.rowcount == 0:
            # outra requisição mudou o status entre a leitura e a escrita
            db.session.rollback()
            payment = self.get_payment(payment_id)
            if payment.status == PaymentStatus.APPROVED:
                return payment
            raise InvalidTransition(
                f"Pagamento já está {payment.status}", paymentId=payment_id, status=payment.status
            )

        if payment.user_id is not None and payment.project_id is not None:
            try:
                entitlements.grant(
                    payment.user_id, payment.project_id,
                    amount=payment.amount, method=payment.method, payment_id=payment.id,
                )
            except NotFound as exc:
                raise EntitlementGrantFailure(
                    "Falha ao entregar o projeto; pagamento mantido como pendente",
                    paymentId=payment_id, cause=exc.message,
                ) from exc
        db.session.commit()
        db.session.refresh(payment)
        current_app.logger.info("payment approved id=%s user=%s item=%s",
                                payment.id, payment.user_id, payment.project_id)
        return payment

    def mark_failed(self, payment_id: int) -> Payment:
        return self._transition(payment_id, PaymentStatus.FAILED)

    def mark_cancelled(self, payment_id: int) -> Payment:
        return self._transition(payment_id, PaymentStatus.CANCELLED)

    def _transition(self, payment_id: int, target: str) -> Payment:
        payment = self.get_payment(payment_id)
        if payment.status == PaymentStatus.APPROVED:
            raise InvalidTransition(
                f"Pagamento aprovado não pode virar {target}", paymentId=payment_id, status=payment.status
            )
        if payment.is_terminal:
            return payment

        result = db.session.execute(
            update(Payment)
            .where(Payment.id == payment_id, Payment.status == PaymentStatus.PENDING)
            .values(status=target, updated_at=self.clock())
        )
        if result.rowcount == 0:
            db.session.rollback()
            payment = self.get_payment(payment_id)
            if payment.status == PaymentStatus.APPROVED:
                raise InvalidTransition(
                    f"Pagamento aprovado não pode virar {target}", paymentId=payment_id, status=payment.status
                )
            return payment
        db.session.commit()
        db.session.refresh(payment)
        current_app.logger.info("payment %s id=%s", target, payment.id)
        return payment

    def expire_stale(self) -> int:
        """Cancela em lote os PIX pendentes vencidos."""
        now = self.clock()
        window = self._window()
        result = db.session.execute(
            update(Payment)
            .where(
                Payment.status == PaymentStatus.PENDING,
                or_(
                    Payment.expires_at <= now,
                    and_(Payment.expires_at.is_(None), Payment.created_at <= now - window),
                ),
            )
            .values(status=PaymentStatus.CANCELLED, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        db.session.commit()
        if result.rowcount:
            current_app.logger.info("expired %s pending payment(s)", result.rowcount)
        return result.rowcount

    # ------------------------------------------------------------------
    # admin / provedor
    # ------------------------------------------------------------------
    def create_manual_payment(self, user_id: int, item_id: int) -> Payment:
        """Pagamento já aprovado, sem PIX; entrega o item no mesmo commit."""
        if user_id is None or item_id is None:
            raise InvalidInput("ID do projeto e do usuário são obrigatórios")
        user, project = self._resolve(user_id, item_id)
        if entitlements.owns(user.id, project.id):
            raise InvalidInput("Usuário já possui este projeto", itemId=project.id)

        now = self.clock()
        try:
            # um PIX pendente para o mesmo par deixa de fazer sentido
            pending = self._pending_for(user.id, project.id)
            if pending is not None:
                pending.status = PaymentStatus.CANCELLED
                db.session.flush()
            payment = Payment(
                correlation_id=new_correlation_id(),
                user_id=user.id,
                project_id=project.id,
                amount=Decimal(project.price or 0).quantize(CENTS),
                status=PaymentStatus.APPROVED,
                method="manual",
                provider="manual",
                description=f"Entrega manual - {project.title}"[:255],
                paid_at=now,
            )
            db.session.add(payment)
            db.session.flush()
            entitlements.grant(user.id, project.id, amount=payment.amount,
                               method="manual", payment_id=payment.id)
            db.session.commit()
        except SQLAlchemyError as exc:
            db.session.rollback()
            current_app.logger.exception("manual payment failed user=%s item=%s", user_id, item_id)
            raise EntitlementGrantFailure(
                "Falha ao registrar pagamento manual", userId=user_id, itemId=item_id
            ) from exc
        current_app.logger.info("manual payment id=%s user=%s item=%s", payment.id, user.id, project.id)
        return payment

    def sync_with_provider(self, payment_id: int) -> Payment:
        """Consulta o provedor e aplica o status; aplica a expiração preguiçosa."""
        payment = self.get_payment(payment_id)
        if payment.status != PaymentStatus.PENDING:
            return payment

        remote = self._remote_status(payment) if self._has_remote(payment) else None
        if remote == PaymentStatus.APPROVED:
            return self.mark_approved(payment.id)
        if remote in (PaymentStatus.FAILED, PaymentStatus.CANCELLED):
            return self._transition(payment.id, remote)
        if self._is_stale(payment, self.clock()):
            return self.mark_cancelled(payment.id)
        return payment

    @staticmethod
    def _has_remote(payment: Payment) -> bool:
        return bool(payment.provider_ref) and payment.provider not in (None, "fallback", "manual")

    def _remote_status(self, payment: Payment) -> str | None:
        settings = self.settings_loader()
        try:
            provider = self.provider_factory(settings, payment.provider)
            return provider.check_status(payment.provider_ref) if provider else None
        except ProviderUnavailable as exc:
            current_app.logger.warning("status check unavailable payment=%s: %s", payment.id, exc.message)
            return None

    def find_for_webhook(self, provider_ref: str | None, correlation_id: str | None) -> Payment:
        payment = None
        if provider_ref:
            payment = Payment.query.filter_by(provider_ref=str(provider_ref)).first()
            if payment is None:
                # provedores que ecoam a nossa referência no campo id
                payment = Payment.query.filter_by(correlation_id=str(provider_ref)).first()
        if payment is None and correlation_id:
            payment = Payment.query.filter_by(correlation_id=str(correlation_id)).first()
        if payment is None:
            raise NotFound("Pagamento não encontrado", providerRef=provider_ref)
        return payment

    def handle_webhook(self, provider_ref: str | None, raw_status=None,
                       correlation_id: str | None = None) -> tuple[Payment, str | None]:
        """Aplica uma notificação de provedor.

        Só pagamentos emitidos por um provedor externo aceitam webhook. O
        status do corpo só vale quando a notificação traz a referência que o
        provedor devolveu na emissão; localizado apenas pelo correlation id
        (que circula no PIX e na resposta da API), o status é confirmado com
        o provedor antes de qualquer transição.
        """
        payment = self.find_for_webhook(provider_ref, correlation_id)
        if not self._has_remote(payment):
            current_app.logger.warning("webhook rejected payment=%s provider=%s",
                                       payment.id, payment.provider)
            raise InvalidInput("Pagamento não foi emitido por um provedor externo", paymentId=payment.id)

        by_ref = provider_ref is not None and payment.provider_ref == str(provider_ref)
        if by_ref and raw_status is not None:
            status = normalize_status(raw_status)
        elif payment.status == PaymentStatus.PENDING:
            status = self._remote_status(payment)
        else:
            status = None

        if status == PaymentStatus.APPROVED:
            payment = self.mark_approved(payment.id)
        elif status == PaymentStatus.FAILED:
            payment = self.mark_failed(payment.id)
        elif status == PaymentStatus.CANCELLED:
            payment = self.mark_cancelled(payment.id)
        current_app.logger.info("webhook processed payment=%s status=%s -> %s",
                                payment.id, raw_status, payment.status)
        return payment, status


def init_payments(app):
    """Registra o orquestrador em app.extensions["payments"]."""
    app.extensions["payments"] = PaymentOrchestrator(
        grant_retries=app.config.get("PAYMENT_GRANT_RETRIES", 3),
    )

def get_orchestrator() -> PaymentOrchestrator:
    orch = current_app.extensions.get("payments")
    if orch is None:
        init_payments(current_app)
        orch = current_app.extensions["payments"]
    return orch
