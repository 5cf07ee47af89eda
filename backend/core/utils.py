"""Utility functions shared by all apps: audit logging, settings, pagination, references"""
import logging
import uuid
from datetime import datetime, time
from decimal import Decimal, InvalidOperation

from django.core.paginator import Paginator
from django.utils import timezone
from django.utils.dateparse import parse_date, parse_datetime
from rest_framework.response import Response

from .models import AuditLog, Setting

logger = logging.getLogger(__name__)


def get_client_ip(request):
    """Extract client IP address from request"""
    if not request or not hasattr(request, 'META'):
        return None
    x_forwarded_for = request.META.get('HTTP_X_FORWARDED_FOR')
    if x_forwarded_for:
        ip = x_forwarded_for.split(',')[0].strip()
    else:
        ip = request.META.get('REMOTE_ADDR')
    return ip or None


def create_audit_log(request=None, action=None, model_name=None, object_id=None,
                     changes=None, user=None, object_name=None, object_reference=None):
    """
    Create an audit log entry

    Args:
        request: Django request object (for user and IP) - optional if user is provided
        action: Action type (create, update, delete, sale_create, etc.)
        model_name: Name of the model being acted upon
        object_id: ID of the object
        changes: Dictionary of changes made
        user: Optional user override (defaults to request.user if request provided)
        object_name: Human-readable name of the object
        object_reference: Reference identifier (e.g., ticket number, purchase reference)
    """
    if not action or not model_name or object_id is None:
        logger.warning(f"Audit log creation skipped: missing required fields (action={action}, model_name={model_name}, object_id={object_id})")
        return None

    audit_user = user
    if audit_user is None and request is not None and hasattr(request, 'user'):
        audit_user = request.user

    try:
        return AuditLog.objects.create(
            user=audit_user if audit_user and audit_user.is_authenticated else None,
            action=action,
            model_name=model_name,
            object_id=str(object_id),
            object_name=object_name,
            object_reference=object_reference,
            changes=changes or {},
            ip_address=get_client_ip(request) if request else None,
        )
    except Exception as e:
        # The main operation must not fail because of auditing
        logger.error(f"Failed to create audit log: {str(e)}")
        return None


def get_setting(key, default=None):
    """Read an application setting, falling back to the built-in defaults"""
    setting = Setting.objects.filter(key=key).first()
    if setting is not None:
        return setting.value
    if default is not None:
        return default
    return Setting.DEFAULTS.get(key)


def get_int_setting(key, default=0):
    value = get_setting(key)
    try:
        return int(value)
    except (TypeError, ValueError):
        logger.warning(f"Setting {key} has a non-integer value {value!r}, using {default}")
        return default


def paginate_response(request, queryset, serializer_class, default_limit=50, context=None):
    """Paginate a queryset and return the standard list payload"""
    try:
        page = max(int(request.query_params.get('page', 1)), 1)
    except (TypeError, ValueError):
        page = 1
    try:
        limit = max(int(request.query_params.get('limit', default_limit)), 1)
    except (TypeError, ValueError):
        limit = default_limit

    paginator = Paginator(queryset, limit)
    page_obj = paginator.get_page(page)

    serializer = serializer_class(page_obj, many=True, context=context or {'request': request})
    return Response({
        'results': serializer.data,
        'count': paginator.count,
        'next': page_obj.next_page_number() if page_obj.has_next() else None,
        'previous': page_obj.previous_page_number() if page_obj.has_previous() else None,
        'page': page_obj.number,
        'page_size': limit,
        'total_pages': paginator.num_pages,
    })


def paginate_list(request, items, default_limit=20):
    """Paginate an already-built list of dicts"""
    try:
        page = max(int(request.query_params.get('page', 1)), 1)
    except (TypeError, ValueError):
        page = 1
    try:
        limit = max(int(request.query_params.get('limit', default_limit)), 1)
    except (TypeError, ValueError):
        limit = default_limit

    paginator = Paginator(items, limit)
    page_obj = paginator.get_page(page)
    return Response({
        'results': list(page_obj.object_list),
        'count': paginator.count,
        'next': page_obj.next_page_number() if page_obj.has_next() else None,
        'previous': page_obj.previous_page_number() if page_obj.has_previous() else None,
        'page': page_obj.number,
        'page_size': limit,
        'total_pages': paginator.num_pages,
    })


def parse_date_param(value, end_of_day=False):
    """
    Parse a date or datetime query parameter into an aware datetime.

    Plain dates map to the start of the day, or to its last instant when end_of_day is set.
    Returns None for empty or unparsable values.
    """
    if not value:
        return None
    try:
        parsed = parse_datetime(value)
        day = None if parsed else parse_date(value)
    except ValueError:
        # Well formed but impossible, like 2024-02-30
        return None
    if parsed is None:
        if day is None:
            return None
        parsed = datetime.combine(day, time.max if end_of_day else time.min)
    if timezone.is_naive(parsed):
        parsed = timezone.make_aware(parsed)
    return parsed


def parse_decimal_param(value):
    if value in (None, ''):
        return None
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None


def generate_reference(prefix):
    """Generate a unique human-readable reference like INV-20240101-1A2B3C"""
    return f"{prefix}-{timezone.now().strftime('%Y%m%d')}-{uuid.uuid4().hex[:6].upper()}"
