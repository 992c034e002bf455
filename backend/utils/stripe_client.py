# backend/utils/stripe_client.py
import httpx
import logging
from typing import Optional

from config import settings
from utils.errors import NotFound, UpstreamTimeout, UpstreamUnavailable, ValidationFailed

logger = logging.getLogger(__name__)


class StripeClient:
    """Thin async client for the payment intents part of a Stripe-compatible API.

    The underlying ``httpx.AsyncClient`` is injected so the application owns
    its lifetime and tests can plug in ``httpx.MockTransport``.
    """

    def __init__(self, http_client: httpx.AsyncClient):
        self.http = http_client

    async def create_payment_intent(
        self,
        amount: int,
        currency: str,
        metadata: dict,
        payment_method_types=("card",),
        idempotency_key: Optional[str] = None,
    ) -> dict:
        # Stripe expects form-encoded bodies with bracketed nested keys
        form = {
            "amount": str(amount),
            "currency": currency,
            "payment_method_types[]": list(payment_method_types),
        }
        for key, value in metadata.items():
            form[f"metadata[{key}]"] = str(value)

        headers = {}
        if idempotency_key:
            headers["Idempotency-Key"] = idempotency_key
        return await self._request("POST", "/v1/payment_intents", data=form, headers=headers)

    async def retrieve_payment_intent(self, intent_id: str) -> dict:
        return await self._request("GET", f"/v1/payment_intents/{intent_id}")

    async def aclose(self):
        await self.http.aclose()

    async def _request(self, method: str, path: str, **kwargs) -> dict:
        try:
            response = await self.http.request(method, path, **kwargs)
        except httpx.TimeoutException as e:
            logger.error("Payment gateway timeout on %s %s: %s", method, path, e)
            raise UpstreamTimeout("Payment gateway timed out") from e
        except httpx.RequestError as e:
            logger.error("Payment gateway unreachable on %s %s: %s", method, path, e)
            raise UpstreamUnavailable("Payment gateway unavailable") from e

        if response.status_code >= 500:
            logger.error("Payment gateway error %s on %s %s: %s", response.status_code, method, path, response.text[:500])
            raise UpstreamUnavailable(f"Payment gateway error ({response.status_code})")

        if response.status_code >= 400:
            # Gateway rejected the request; surface its message
            try:
                message = response.json().get("error", {}).get("message")
            except ValueError:
                message = None
            message = message or response.text or "Payment gateway rejected the request"
            logger.warning("Payment gateway rejected %s %s (%s): %s", method, path, response.status_code, message)
            if response.status_code == 404:
                raise NotFound(message)
            raise ValidationFailed(message)

        return response.json()


def build_stripe_client() -> StripeClient:
    # Bounded timeout so no checkout call hangs on the gateway
    http_client = httpx.AsyncClient(
        base_url=settings.STRIPE_API_URL,
        headers={"Authorization": f"Bearer {settings.STRIPE_SECRET_KEY}"},
        timeout=httpx.Timeout(settings.PAYMENT_GATEWAY_TIMEOUT),
    )
    return StripeClient(http_client)
