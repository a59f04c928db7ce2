import logging

import stripe
from fastapi import FastAPI, Request, Header, HTTPException
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from courtpay.config import Settings
from courtpay.confirmation import ConfirmationHandler
from courtpay.database import Base, make_engine, make_session_factory
from courtpay.errors import ConfirmationError, WebhookNotConfigured
from courtpay.routes import router
from courtpay.verifier import StripeVerifier

logger = logging.getLogger(__name__)

CONFIRMING_EVENTS = {"checkout.session.completed", "checkout.session.async_payment_succeeded"}


def create_app(settings: Settings = None, verifier=None, session_factory=None) -> FastAPI:
    settings = settings or Settings.from_env()
    logging.basicConfig(level=settings.log_level)

    if session_factory is None:
        engine = make_engine(settings.database_url)
        Base.metadata.create_all(bind=engine)
        session_factory = make_session_factory(engine)

    if verifier is None:
        verifier = StripeVerifier(
            settings.stripe_secret_key,
            timeout=settings.stripe_timeout_seconds,
            max_network_retries=settings.stripe_max_network_retries,
        )

    app = FastAPI(title="Court Marketplace Payment Confirmation")
    app.state.settings = settings
    app.state.confirmation_handler = ConfirmationHandler(
        verifier,
        session_factory,
        platform_fee_rate=settings.platform_fee_rate,
    )
    app.include_router(router)

    @app.exception_handler(ConfirmationError)
    async def confirmation_error_handler(request: Request, exc: ConfirmationError):
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.post("/webhook")
    async def stripe_webhook(request: Request, stripe_signature: str = Header(None)):
        if not settings.stripe_webhook_secret:
            logger.error("Stripe webhook received but STRIPE_WEBHOOK_SECRET is not set")
            raise WebhookNotConfigured("Stripe webhook secret is not configured")

        payload = await request.body()

        try:
            event = stripe.Webhook.construct_event(
                payload,
                stripe_signature,
                settings.stripe_webhook_secret
            )
        except ValueError:
            raise HTTPException(status_code=400, detail="Invalid payload")
        except stripe.SignatureVerificationError:
            raise HTTPException(status_code=400, detail="Invalid signature")

        if event["type"] not in CONFIRMING_EVENTS:
            return {"ok": True}

        session_id = event["data"]["object"]["id"]
        handler = request.app.state.confirmation_handler
        try:
            result = await run_in_threadpool(handler.confirm, session_id)
        except ConfirmationError as exc:
            if exc.retryable:
                # non-2xx makes Stripe redeliver the event later
                return JSONResponse(status_code=503, content=exc.to_dict())
            logger.warning("Webhook %s for %s not applied: %s", event["type"], session_id, exc.code)
            return {"ok": True, "ignored": exc.code}

        return {"ok": True, "effect_id": result.effect_id}

    return app
