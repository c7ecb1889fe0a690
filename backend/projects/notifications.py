import logging

from django.conf import settings
from django.core.mail import send_mail
from django.template.loader import render_to_string
from django.utils.html import strip_tags

logger = logging.getLogger(__name__)


def _site_context():
    return {
        'site_name': getattr(settings, 'SITE_NAME', 'TrustLayer'),
        'site_url': getattr(settings, 'SITE_URL', ''),
    }


def _send_html_email(subject, template_name, context, recipients):
    html_message = render_to_string(template_name, {**_site_context(), **context})
    send_mail(
        subject=subject,
        message=strip_tags(html_message),
        from_email=settings.DEFAULT_FROM_EMAIL,
        recipient_list=recipients,
        html_message=html_message,
        fail_silently=False,
    )


def send_contract_signed_email(*, contractor_email, contractor_name, project_name, document_name, client_name):
    """
    Tell the contractor that the client signed a contract document.
    Delivery errors propagate to the caller.
    """
    _send_html_email(
        subject=f"Contract Signed: {project_name}",
        template_name='emails/contract_signed.html',
        context={
            'contractor_name': contractor_name,
            'project_name': project_name,
            'document_name': document_name,
            'client_name': client_name,
        },
        recipients=[contractor_email],
    )
    logger.info("Contract signed notification sent to %s for project %s", contractor_email, project_name)
    return [contractor_email]


def send_project_invitation(project):
    """
    Invite the client to a newly created project. Never raises.
    """
    try:
        _send_html_email(
            subject=f"You've been invited to project: {project.project_name}",
            template_name='emails/project_invitation.html',
            context={'project': project, 'contractor': project.contractor},
            recipients=[project.client_email],
        )
    except Exception as e:
        logger.error(f"Failed to send project invitation to {project.client_email}: {str(e)}")
        return False

    logger.info(f"Project invitation sent to {project.client_email} for project {project.id}")
    return True
