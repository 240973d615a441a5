# viewsets.py
import logging

from django.db import IntegrityError, transaction
from django.db.models import ProtectedError
from django.http import Http404
from rest_framework import status, viewsets, permissions
from rest_framework.exceptions import APIException
from rest_framework.response import Response

from .exceptions import MISError, Conflict, Forbidden, NotFound, error_response
from .utils import audit

logger = logging.getLogger(__name__)

STAFF_ROLES = ['SUPER_ADMIN', 'ADMIN', 'STAFF']
TEACHING_ROLES = STAFF_ROLES + ['TEACHER']


def validation_failed(serializer):
    return Response({
        'success': False,
        'error': 'Validation failed',
        'details': serializer.errors
    }, status=status.HTTP_400_BAD_REQUEST)


class AuditedModelViewSet(viewsets.ModelViewSet):
    """ModelViewSet answering in the ``{success, data, error}`` envelope.

    Every write is audited as ``<audit_event>_CREATE/_UPDATE/_DELETE`` against
    ``audit_table``. Subclasses hook in through:

    - ``check_unique(data, instance)``: raise ``Conflict`` for duplicate keys
    - ``check_delete(instance)``: raise ``BusinessRuleViolation`` to block a delete
    - ``get_save_kwargs()``: extra attributes for ``serializer.save``
    - ``get_write_data(request)``: the payload handed to the serializer
    """
    permission_classes = [permissions.IsAuthenticated]
    resource_name = 'Record'
    audit_table = None
    audit_event = None
    conflict_message = 'A record with these details already exists'
    write_roles = None

    # ---- hooks ----
    def check_unique(self, data, instance=None):
        pass

    def check_delete(self, instance):
        pass

    def get_save_kwargs(self):
        return {}

    def get_write_data(self, request):
        return request.data

    def check_write_permission(self, request, verb):
        if self.write_roles and request.user.role not in self.write_roles:
            raise Forbidden(f"You do not have permission to {verb} {self.resource_name.lower()} records")

    def get_object(self):
        try:
            return super().get_object()
        except Http404:
            raise NotFound(self.resource_name)

    def _audit(self, operation, instance_id, old_values=None, new_values=None, changed_fields=None):
        event = self.audit_event or self.resource_name.upper()
        suffix = {'INSERT': 'CREATE', 'UPDATE': 'UPDATE', 'DELETE': 'DELETE'}[operation]
        audit(
            self.request,
            f"{event}_{suffix}",
            self.audit_table or self.resource_name,
            record_id=instance_id,
            operation=operation,
            old_values=old_values,
            new_values=new_values,
            changed_fields=changed_fields,
        )

    # ---- reads ----
    def list(self, request, *args, **kwargs):
        try:
            queryset = self.filter_queryset(self.get_queryset())
            page = self.paginate_queryset(queryset)
            if page is not None:
                serializer = self.get_serializer(page, many=True)
                return self.get_paginated_response(serializer.data)

            serializer = self.get_serializer(queryset, many=True)
            return Response({'success': True, 'data': serializer.data})

        except MISError as e:
            return error_response(e)
        except APIException:
            raise
        except Exception as e:
            logger.error(f"Error listing {self.resource_name.lower()} records: {str(e)}")
            return Response({
                'success': False,
                'error': f"Failed to load {self.resource_name.lower()} records"
            }, status=status.HTTP_500_INTERNAL_SERVER_ERROR)

    def retrieve(self, request, *args, **kwargs):
        instance = self.get_object()
        return Response({'success': True, 'data': self.get_serializer(instance).data})

    # ---- writes ----
    def create(self, request, *args, **kwargs):
        try:
            self.check_write_permission(request, 'create')
            data = self.get_write_data(request)
        except MISError as e:
            return error_response(e)

        serializer = self.get_serializer(data=data)
        if not serializer.is_valid():
            return validation_failed(serializer)

        try:
            self.check_unique(serializer.validated_data)
            with transaction.atomic():
                instance = serializer.save(**self.get_save_kwargs())

            data = self.get_serializer(instance).data
            self._audit('INSERT', instance.pk, new_values=data)

            return Response({
                'success': True,
                'message': f"{self.resource_name} created successfully",
                'data': data
            }, status=status.HTTP_201_CREATED)

        except MISError as e:
            return error_response(e)
        except IntegrityError as e:
            logger.warning(f"Integrity error creating {self.resource_name.lower()}: {str(e)}")
            return error_response(Conflict(self.conflict_message))
        except Exception as e:
            logger.error(f"Error creating {self.resource_name.lower()}: {str(e)}")
            return Response({
                'success': False,
                'error': f"Failed to create {self.resource_name.lower()}",
            }, status=status.HTTP_500_INTERNAL_SERVER_ERROR)

    def update(self, request, *args, **kwargs):
        try:
            self.check_write_permission(request, 'update')
            instance = self.get_object()
            data = self.get_write_data(request)
        except MISError as e:
            return error_response(e)

        old_values = self.get_serializer(instance).data
        serializer = self.get_serializer(instance, data=data, partial=True)
        if not serializer.is_valid():
            return validation_failed(serializer)

        try:
            self.check_unique(serializer.validated_data, instance)
            with transaction.atomic():
                instance = serializer.save()

            changed_fields = list(serializer.validated_data.keys())
            data = self.get_serializer(instance).data
            self._audit(
                'UPDATE', instance.pk,
                old_values={k: old_values[k] for k in changed_fields if k in old_values},
                new_values={k: data[k] for k in changed_fields if k in data},
                changed_fields=changed_fields,
            )

            return Response({
                'success': True,
                'message': f"{self.resource_name} updated successfully",
                'data': data
            })

        except MISError as e:
            return error_response(e)
        except IntegrityError as e:
            logger.warning(f"Integrity error updating {self.resource_name.lower()}: {str(e)}")
            return error_response(Conflict(self.conflict_message))
        except Exception as e:
            logger.error(f"Error updating {self.resource_name.lower()}: {str(e)}")
            return Response({
                'success': False,
                'error': f"Failed to update {self.resource_name.lower()}",
            }, status=status.HTTP_500_INTERNAL_SERVER_ERROR)

    def partial_update(self, request, *args, **kwargs):
        return self.update(request, *args, **kwargs)

    def destroy(self, request, *args, **kwargs):
        try:
            self.check_write_permission(request, 'delete')
            instance = self.get_object()
            self.check_delete(instance)

            record_id = instance.pk
            old_values = self.get_serializer(instance).data
            instance.delete()
            self._audit('DELETE', record_id, old_values=old_values)

            return Response({
                'success': True,
                'message': f"{self.resource_name} deleted successfully"
            })

        except MISError as e:
            return error_response(e)
        except ProtectedError as e:
            logger.warning(f"Protected delete of {self.resource_name.lower()}: {str(e)}")
            return Response({
                'success': False,
                'error': f"Cannot delete {self.resource_name.lower()} while other records depend on it"
            }, status=status.HTTP_400_BAD_REQUEST)
        except Exception as e:
            logger.error(f"Error deleting {self.resource_name.lower()}: {str(e)}")
            return Response({
                'success': False,
                'error': f"Failed to delete {self.resource_name.lower()}",
            }, status=status.HTTP_500_INTERNAL_SERVER_ERROR)
