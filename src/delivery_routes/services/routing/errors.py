"""Exceptions raised while generating delivery routes."""

from __future__ import annotations

from typing import Sequence


class RouteGenerationError(ValueError):
    """A precondition failed; nothing was sent to the optimizer or written."""

    status_code = 400

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def payload(self) -> dict:
        return {"success": False, "message": self.message}


class BatchNotFoundError(RouteGenerationError):
    status_code = 404

    def __init__(self, batch_id: str) -> None:
        super().__init__(f"Batch '{batch_id}' not found")
        self.batch_id = batch_id


class BatchStateError(RouteGenerationError):
    status_code = 409


class InvalidDepotError(RouteGenerationError):
    pass


class EmptyBatchError(RouteGenerationError):
    pass


class NoEligibleDriversError(RouteGenerationError):
    pass


class InvalidDeliveryWindowError(RouteGenerationError):
    pass


class InvalidOrderLocationError(RouteGenerationError):
    def __init__(self, order_ids: Sequence[str], *, missing: Sequence[str] = ()) -> None:
        self.invalid_geo_orders = list(order_ids)
        self.missing_orders = list(missing)
        parts = []
        if self.invalid_geo_orders:
            parts.append(f"Invalid coordinates for {len(self.invalid_geo_orders)} orders")
        if self.missing_orders:
            parts.append(f"{len(self.missing_orders)} orders could not be found")
        super().__init__("; ".join(parts) or "Invalid order locations")

    def payload(self) -> dict:
        data = super().payload()
        data["invalid_geo_orders"] = self.invalid_geo_orders
        if self.missing_orders:
            data["missing_orders"] = self.missing_orders
        return data


class OptimizerError(ConnectionError):
    """The fleet routing service could not be authenticated against or reached."""

    status_code = 502
