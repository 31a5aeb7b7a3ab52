# accounts/permissions.py
from rest_framework.permissions import BasePermission


class HasRole(BasePermission):
    """
    Allows access only to authenticated users with the given role.
    Keeps role check logic centralized.
    """
    role = None
    message = "You do not have permission to perform this action."

    def has_permission(self, request, view):
        user = getattr(request, "user", None)
        if not user or not user.is_authenticated:
            return False
        return getattr(user, "role", None) == self.role


class IsFarmer(HasRole):
    role = "farmer"
    message = "Only farmers can manage transport for orders."


class IsTransporter(HasRole):
    role = "transporter"
    message = "Only transporters can access transport offers."
