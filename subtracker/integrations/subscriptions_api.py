from __future__ import annotations

import logging
from datetime import date
from typing import Any, TypeVar

import httpx
from pydantic import BaseModel

from subtracker.core.exceptions import (
    ApiError,
    BadRequestError,
    ConflictError,
    InvalidResponseError,
    NetworkError,
    NotFoundError,
    ServerError,
    SessionExpiredError,
    ValidationError,
)
from subtracker.schemas.category import CategoryListResponse
from subtracker.schemas.common import APIErrorBody, ValidationErrorBody
from subtracker.schemas.query import ListQuery
from subtracker.schemas.subscription import (
    CancellationRequest,
    CancellationResponse,
    ReactivateRequest,
    SavingsSummaryResponse,
    Subscription,
    SubscriptionCreate,
    SubscriptionListResponse,
    SubscriptionUpdate,
)

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


class SubscriptionsApiClient:
    """Async client for the subscription backend REST API."""

    def __init__(
        self,
        base_url: str,
        access_token: str,
        *,
        timeout: float = 30.0,
        http_client: httpx.AsyncClient | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self._access_token = access_token
        self.client = http_client or httpx.AsyncClient(base_url=self.base_url, timeout=timeout)

    def set_access_token(self, access_token: str) -> None:
        """Swap the bearer token after the user signs in again."""
        self._access_token = access_token

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self._access_token}",
            "Content-Type": "application/json",
        }

    async def list_subscriptions(self, query: ListQuery) -> SubscriptionListResponse:
        response = await self._request("GET", "/subscriptions", params=query.to_params())
        return self._decode(response, SubscriptionListResponse)

    async def delete_subscription(self, subscription_id: int) -> None:
        await self._request(
            "DELETE",
            f"/subscriptions/{subscription_id}",
            not_found="Subscription was already deleted",
        )

    async def restore_subscription(self, subscription_id: int) -> Subscription:
        response = await self._request(
            "POST",
            f"/subscriptions/{subscription_id}/restore",
            bad_request="Subscription is not deleted",
            not_found="Subscription not found",
        )
        return self._decode(response, Subscription)

    async def create_subscription(self, payload: SubscriptionCreate) -> Subscription:
        response = await self._request(
            "POST",
            "/subscriptions",
            json=payload.model_dump(mode="json"),
        )
        return self._decode(response, Subscription)

    async def update_subscription(
        self,
        subscription_id: int,
        payload: SubscriptionUpdate,
        *,
        if_unmodified_since: str | None = None,
    ) -> Subscription:
        headers = {"If-Unmodified-Since": if_unmodified_since} if if_unmodified_since else None
        response = await self._request(
            "PUT",
            f"/subscriptions/{subscription_id}",
            json=payload.model_dump(mode="json", exclude_unset=True),
            headers=headers,
            not_found="This subscription was deleted",
        )
        return self._decode(response, Subscription)

    async def cancel_subscription(
        self,
        subscription_id: int,
        payload: CancellationRequest | None = None,
    ) -> CancellationResponse:
        body = payload.model_dump(mode="json", exclude_none=True) if payload else {}
        response = await self._request(
            "POST",
            f"/subscriptions/{subscription_id}/cancel",
            json=body or None,
            bad_request="Subscription is already cancelled",
            not_found="Subscription not found",
        )
        return self._decode(response, CancellationResponse)

    async def reactivate_subscription(
        self,
        subscription_id: int,
        next_billing_date: date | None = None,
    ) -> Subscription:
        body = ReactivateRequest(next_billing_date=next_billing_date).model_dump(mode="json", exclude_none=True)
        response = await self._request(
            "POST",
            f"/subscriptions/{subscription_id}/reactivate",
            json=body or None,
            bad_request="Subscription is not cancelled",
            not_found="Subscription not found",
        )
        return self._decode(response, Subscription)

    async def get_savings_summary(self) -> SavingsSummaryResponse:
        response = await self._request("GET", "/subscriptions/savings")
        return self._decode(response, SavingsSummaryResponse)

    async def list_categories(self) -> CategoryListResponse:
        response = await self._request("GET", "/categories")
        return self._decode(response, CategoryListResponse)

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, str] | None = None,
        json: Any = None,
        headers: dict[str, str] | None = None,
        bad_request: str | None = None,
        not_found: str | None = None,
    ) -> httpx.Response:
        request_headers = self._headers()
        if headers:
            request_headers.update(headers)
        try:
            response = await self.client.request(
                method,
                f"{self.base_url}{path}",
                params=params,
                json=json,
                headers=request_headers,
            )
        except httpx.HTTPError as exc:
            logger.warning("%s %s failed: %s", method, path, exc)
            raise NetworkError(f"Network error: {exc}") from exc

        if response.is_success:
            logger.debug("%s %s -> %s", method, path, response.status_code)
            return response

        logger.warning("%s %s -> %s: %s", method, path, response.status_code, response.text)
        raise self._error_for(response, bad_request=bad_request, not_found=not_found)

    @staticmethod
    def _error_for(
        response: httpx.Response,
        *,
        bad_request: str | None = None,
        not_found: str | None = None,
    ) -> ApiError:
        status = response.status_code
        if status == 401:
            return SessionExpiredError()
        if status == 422:
            return _validation_error(response)
        detail = _error_detail(response)
        if status == 400:
            return BadRequestError(detail or bad_request or "Bad request")
        if status == 404:
            return NotFoundError(not_found or detail or "Not found")
        if status == 409:
            return ConflictError(detail) if detail else ConflictError()
        return ServerError(f"Server error: {status}", status_code=status)

    @staticmethod
    def _decode(response: httpx.Response, model: type[ModelT]) -> ModelT:
        try:
            return model.model_validate(response.json())
        except ValueError as exc:
            logger.error("Could not decode %s from %s: %s", model.__name__, response.url, exc)
            raise InvalidResponseError(
                f"Invalid response from server: {model.__name__}",
                status_code=response.status_code,
            ) from exc

    async def close(self) -> None:
        await self.client.aclose()

    async def __aenter__(self) -> SubscriptionsApiClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()


def _error_detail(response: httpx.Response) -> str | None:
    try:
        return APIErrorBody.model_validate(response.json()).detail
    except ValueError:
        return None


def _validation_error(response: httpx.Response) -> ValidationError:
    try:
        body = ValidationErrorBody.model_validate(response.json())
    except ValueError:
        return ValidationError()
    if not body.detail:
        return ValidationError()
    first = body.detail[0]
    field = str(first.loc[-1]) if first.loc else None
    return ValidationError(first.msg, field=field)
