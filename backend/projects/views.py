import logging

from rest_framework import generics, status
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from .models import Project
from .notifications import send_contract_signed_email
from .serializers import ContractSignedNotificationSerializer, ProjectSerializer
from .services import ProjectCreditRequired, create_project

logger = logging.getLogger(__name__)


class ProjectListCreateView(generics.ListCreateAPIView):
    """
    List the contractor's projects, or create one if entitlements allow it
    """
    serializer_class = ProjectSerializer
    permission_classes = [IsAuthenticated]

    def get_queryset(self):
        return Project.objects.filter(contractor=self.request.user).order_by('-created_at')

    def create(self, request, *args, **kwargs):
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            project, authorization = create_project(request.user, **serializer.validated_data)
        except ProjectCreditRequired:
            return Response(
                {
                    'error': 'No project credits left. Purchase a credit or subscribe to create more projects.',
                    'code': 'credit_exhausted',
                    'retryable': False,
                },
                status=status.HTTP_402_PAYMENT_REQUIRED,
            )

        payload = self.get_serializer(project).data
        payload['authorizedBy'] = authorization.reason
        return Response(payload, status=status.HTTP_201_CREATED)


class ContractSignedNotificationView(APIView):
    """
    Email the contractor once the client has signed a contract document
    """
    authentication_classes = []
    permission_classes = [AllowAny]

    def post(self, request):
        serializer = ContractSignedNotificationSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(
                {'error': 'Invalid notification request.', 'details': serializer.errors},
                status=status.HTTP_400_BAD_REQUEST,
            )

        data = serializer.validated_data
        try:
            recipients = send_contract_signed_email(
                contractor_email=data['contractorEmail'],
                contractor_name=data['contractorName'],
                project_name=data['projectName'],
                document_name=data['documentName'],
                client_name=data['clientName'],
            )
        except Exception:
            logger.exception("Failed to send contract signed notification for %s", data['projectName'])
            return Response(
                {'error': 'Failed to send notification.'},
                status=status.HTTP_500_INTERNAL_SERVER_ERROR,
            )

        return Response({'status': 'sent', 'recipients': recipients}, status=status.HTTP_200_OK)
