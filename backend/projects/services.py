import logging

from django.db import transaction

from billing.services.entitlements import ProjectAuthorization, authorize_project_creation

from .models import Project
from .notifications import send_project_invitation

logger = logging.getLogger(__name__)


class ProjectCreditRequired(Exception):
    """The contractor has no subscription and no project credit left."""


def create_project(contractor, *, project_name, client_email, start_date, end_date):
    """
    Authorise and insert a project in one database transaction.

    The credit consumed by the authorisation is rolled back together with
    the insert if the insert fails. The client invitation is queued with
    ``transaction.on_commit``, so it only goes out once the project row is
    committed, and it never fails the creation.
    """
    with transaction.atomic():
        authorization: ProjectAuthorization = authorize_project_creation(contractor.pk)
        if not authorization.allowed:
            raise ProjectCreditRequired()

        project = Project.objects.create(
            contractor=contractor,
            project_name=project_name,
            client_email=client_email,
            start_date=start_date,
            end_date=end_date,
        )
        transaction.on_commit(lambda: send_project_invitation(project))

    logger.info(
        "Project %s created by %s (authorised via %s, credit consumed: %s)",
        project.id,
        contractor.pk,
        authorization.reason,
        authorization.consumed_credit,
    )
    return project, authorization
