from rest_framework.permissions import BasePermission


def user_has_role(user, *roles):
    """Check whether an authenticated user holds one of the given roles"""
    if not user or not user.is_authenticated:
        return False
    return user.has_role(*roles)


class IsAdminRole(BasePermission):
    """Allow access to administrators only"""
    message = 'Permission denied'

    def has_permission(self, request, view):
        return user_has_role(request.user, 'ADMIN')


class IsManagerOrAdmin(BasePermission):
    """Allow access to managers and administrators"""
    message = 'Permission denied'

    def has_permission(self, request, view):
        return user_has_role(request.user, 'ADMIN', 'MANAGER')
