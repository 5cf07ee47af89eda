import logging
from datetime import timedelta

from django.utils import timezone
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from backend.core.cache_utils import get_or_compute_dashboard
from backend.core.utils import parse_date_param
from .dashboard import TRUNC_FUNCTIONS, compute_stats, compute_sales_chart

logger = logging.getLogger(__name__)

DEFAULT_CHART_DAYS = 30


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def dashboard_stats(request):
    """Sales, product and purchase KPIs for a date range (all time by default)"""
    start_date = parse_date_param(request.query_params.get('start_date'))
    end_date = parse_date_param(request.query_params.get('end_date'), end_of_day=True)
    return Response(get_or_compute_dashboard('stats', compute_stats, start_date, end_date))


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def dashboard_sales_chart(request):
    """Revenue and margin grouped by day, week or month (last 30 days by default)"""
    group_by = request.query_params.get('group_by', 'day')
    if group_by not in TRUNC_FUNCTIONS:
        return Response({'error': 'group_by must be one of day, week, month'}, status=status.HTTP_400_BAD_REQUEST)

    end_date = parse_date_param(request.query_params.get('end_date'), end_of_day=True) or timezone.now()
    start_date = parse_date_param(request.query_params.get('start_date'))
    if start_date is None:
        start_date = (end_date - timedelta(days=DEFAULT_CHART_DAYS)).replace(hour=0, minute=0, second=0, microsecond=0)

    return Response(get_or_compute_dashboard('sales_chart', compute_sales_chart, start_date, end_date, group_by))
