"""Validation utilities for request payloads."""
from typing import Any, Dict, List, Optional


class Validator:
    """Validation helper class."""

    @staticmethod
    def validate_required_fields(data: Dict, required_fields: List[str]) -> Dict[str, Any]:
        """Validate required fields in data."""
        errors = []

        for field in required_fields:
            if field not in data or data[field] in (None, ''):
                errors.append(f"{field} is required")

        return {
            "is_valid": len(errors) == 0,
            "errors": errors
        }

    @staticmethod
    def validate_int(value: Any, field: str, minimum: Optional[int] = None) -> Dict[str, Any]:
        """Accept ints only; bools are rejected even though they subclass int."""
        errors = []

        if isinstance(value, bool) or not isinstance(value, int):
            errors.append(f"{field} must be an integer")
        elif minimum is not None and value < minimum:
            errors.append(f"{field} must be at least {minimum}")

        return {
            "is_valid": len(errors) == 0,
            "errors": errors
        }

    @staticmethod
    def validate_tiers(tiers: Any) -> Dict[str, Any]:
        """Check the shape of a refund tier list; ranges are checked by the service."""
        errors = []

        if not isinstance(tiers, list):
            errors.append("tiers must be a list")
        else:
            for index, tier in enumerate(tiers):
                if not isinstance(tier, dict):
                    errors.append(f"tiers[{index}] must be an object")
                    continue
                if not isinstance(tier.get('min_rate'), (int, float)) or isinstance(tier.get('min_rate'), bool):
                    errors.append(f"tiers[{index}].min_rate must be a number")
                if isinstance(tier.get('refund_percent'), bool) or not isinstance(tier.get('refund_percent'), int):
                    errors.append(f"tiers[{index}].refund_percent must be an integer")

        return {
            "is_valid": len(errors) == 0,
            "errors": errors
        }


def pagination_args(args, default_limit: int, max_limit: int):
    """``page`` and ``limit`` query parameters, clamped."""
    page = args.get('page', 1, type=int) or 1
    limit = args.get('limit', default_limit, type=int) or default_limit
    return max(page, 1), max(1, min(limit, max_limit))
