# api/permissions.py
from __future__ import annotations

from rest_framework.permissions import BasePermission

from shop.lifecycle import is_order_admin


class IsOrderAdmin(BasePermission):
    """Staff, superusers and members holding shop.manage_orders."""

    message = "Only order administrators can do this."

    def has_permission(self, request, view) -> bool:
        return is_order_admin(getattr(request, "user", None))


class IsOrderOwner(BasePermission):
    """Object-level: the order's customer, or an order administrator."""

    def has_object_permission(self, request, view, obj) -> bool:
        user = getattr(request, "user", None)
        if not getattr(user, "is_authenticated", False):
            return False
        if is_order_admin(user):
            return True

        customer_id = getattr(obj, "customer_id", None)
        if customer_id is None:
            return False
        return customer_id == getattr(user, "id", None)
