import logging

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated, AllowAny
from rest_framework_simplejwt.views import TokenObtainPairView, TokenRefreshView
from rest_framework_simplejwt.serializers import TokenObtainPairSerializer, TokenRefreshSerializer
from rest_framework_simplejwt.exceptions import AuthenticationFailed, InvalidToken, TokenError
from django.contrib.auth import get_user_model
from django.core.exceptions import ObjectDoesNotExist
from django.db import transaction
from django.db.models import ProtectedError
from django.shortcuts import get_object_or_404

from .models import Setting, AuditLog, Company
from .permissions import IsAdminRole, user_has_role
from .serializers import (
    UserSerializer, UserCreateSerializer,
    SettingSerializer, CompanySerializer, AuditLogSerializer
)
from .utils import create_audit_log, paginate_response, parse_date_param

logger = logging.getLogger(__name__)

User = get_user_model()


class CustomTokenObtainPairSerializer(TokenObtainPairSerializer):
    def validate(self, attrs):
        data = super().validate(attrs)
        if not self.user.is_active:
            raise AuthenticationFailed('User account is disabled.')
        data['user'] = UserSerializer(self.user).data
        return data

    @classmethod
    def get_token(cls, user):
        token = super().get_token(user)
        token['username'] = user.username
        token['role'] = user.effective_role
        return token


class CustomTokenObtainPairView(TokenObtainPairView):
    serializer_class = CustomTokenObtainPairSerializer


class CustomTokenRefreshSerializer(TokenRefreshSerializer):
    """Token refresh serializer that handles deleted users gracefully"""
    def validate(self, attrs):
        try:
            return super().validate(attrs)
        except (InvalidToken, TokenError):
            raise InvalidToken('Token is invalid or expired.')
        except ObjectDoesNotExist:
            raise InvalidToken('Token is invalid. User no longer exists.')


class CustomTokenRefreshView(TokenRefreshView):
    serializer_class = CustomTokenRefreshSerializer


@api_view(['POST'])
@permission_classes([AllowAny])
def register(request):
    """User registration endpoint"""
    serializer = UserCreateSerializer(data=request.data)
    if serializer.is_valid():
        # Self-registered accounts never pick their own role
        user = serializer.save(role=User.ROLE_SELLER)
        token = CustomTokenObtainPairSerializer.get_token(user)
        logger.info(f"User registered: {user.username}")
        return Response({
            'user': UserSerializer(user).data,
            'access': str(token.access_token),
            'refresh': str(token),
        }, status=status.HTTP_201_CREATED)
    return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def user_me(request):
    """Get the current user with role-derived access flags"""
    user = request.user
    data = UserSerializer(user).data
    data['role'] = user.effective_role
    data['is_admin'] = user_has_role(user, 'ADMIN')
    data['can_manage'] = user_has_role(user, 'ADMIN', 'MANAGER')
    return Response(data)


# User views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsAdminRole])
def user_list_create(request):
    """List all users or create a new user"""
    if request.method == 'GET':
        users = User.objects.all().order_by('username')
        serializer = UserSerializer(users, many=True)
        return Response(serializer.data)
    else:
        serializer = UserCreateSerializer(data=request.data)
        if serializer.is_valid():
            user = serializer.save()
            create_audit_log(request=request, action='create', model_name='User',
                             object_id=user.id, object_name=user.username)
            return Response(UserSerializer(user).data, status=status.HTTP_201_CREATED)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated, IsAdminRole])
def user_detail(request, pk):
    """Retrieve, update or delete a user"""
    user = get_object_or_404(User, pk=pk)

    if request.method == 'GET':
        serializer = UserSerializer(user)
        return Response(serializer.data)
    elif request.method in ('PUT', 'PATCH'):
        serializer = UserSerializer(user, data=request.data, partial=request.method == 'PATCH')
        if serializer.is_valid():
            serializer.save()
            changed = sorted(k for k in request.data.keys() if k != 'password')
            create_audit_log(request=request, action='update', model_name='User',
                             object_id=user.id, object_name=user.username,
                             changes={'fields': changed})
            return Response(serializer.data)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    else:  # DELETE
        if user.pk == request.user.pk:
            return Response({'error': 'You cannot delete your own account'}, status=status.HTTP_400_BAD_REQUEST)
        try:
            user.delete()
        except ProtectedError:
            return Response({'error': 'User has sales or cash registers; deactivate the account instead'},
                            status=status.HTTP_400_BAD_REQUEST)
        create_audit_log(request=request, action='delete', model_name='User',
                         object_id=pk, object_name=user.username)
        return Response(status=status.HTTP_204_NO_CONTENT)


# Setting views
@api_view(['GET', 'PUT'])
@permission_classes([IsAuthenticated])
def settings_view(request):
    """Get all settings merged over defaults, or upsert a {key: value} mapping"""
    if request.method == 'PUT':
        if not user_has_role(request.user, 'ADMIN'):
            return Response({'error': 'Permission denied'}, status=status.HTTP_403_FORBIDDEN)
        if not isinstance(request.data, dict) or not request.data:
            return Response({'error': 'Expected a mapping of setting keys to values'}, status=status.HTTP_400_BAD_REQUEST)

        with transaction.atomic():
            for key, value in request.data.items():
                Setting.objects.update_or_create(key=key, defaults={'value': str(value)})
        create_audit_log(request=request, action='update', model_name='Setting',
                         object_id='settings', changes={k: str(v) for k, v in request.data.items()})

    values = dict(Setting.DEFAULTS)
    values.update(dict(Setting.objects.values_list('key', 'value')))
    return Response(values)


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsAdminRole])
def setting_list(request):
    """List stored setting rows with descriptions"""
    serializer = SettingSerializer(Setting.objects.all().order_by('key'), many=True)
    return Response(serializer.data)


# Company views
@api_view(['GET', 'PUT', 'PATCH'])
@permission_classes([IsAuthenticated])
def company_detail(request):
    """Retrieve or update the company profile"""
    company = Company.get_solo()

    if request.method == 'GET':
        return Response(CompanySerializer(company).data)

    if not user_has_role(request.user, 'ADMIN'):
        return Response({'error': 'Permission denied'}, status=status.HTTP_403_FORBIDDEN)
    serializer = CompanySerializer(company, data=request.data, partial=request.method == 'PATCH')
    if serializer.is_valid():
        serializer.save()
        create_audit_log(request=request, action='update', model_name='Company',
                         object_id=company.id, object_name=company.name,
                         changes={'fields': sorted(request.data.keys())})
        return Response(serializer.data)
    return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


# AuditLog views (read-only)
@api_view(['GET'])
@permission_classes([IsAuthenticated])
def audit_log_list(request):
    """List audit logs with filtering"""
    queryset = AuditLog.objects.select_related('user')

    if not user_has_role(request.user, 'ADMIN'):
        queryset = queryset.filter(user=request.user)

    action_filter = request.query_params.get('action')
    if action_filter:
        queryset = queryset.filter(action=action_filter)

    model_filter = request.query_params.get('model')
    if model_filter:
        queryset = queryset.filter(model_name=model_filter)

    date_from = parse_date_param(request.query_params.get('date_from'))
    date_to = parse_date_param(request.query_params.get('date_to'), end_of_day=True)
    if date_from:
        queryset = queryset.filter(created_at__gte=date_from)
    if date_to:
        queryset = queryset.filter(created_at__lte=date_to)

    return paginate_response(request, queryset.order_by('-created_at'), AuditLogSerializer)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def audit_log_detail(request, pk):
    """Retrieve an audit log"""
    audit_log = get_object_or_404(AuditLog, pk=pk)

    if not user_has_role(request.user, 'ADMIN') and audit_log.user_id != request.user.id:
        return Response({'error': 'Permission denied'}, status=status.HTTP_403_FORBIDDEN)

    return Response(AuditLogSerializer(audit_log).data)
