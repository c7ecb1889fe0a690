import uuid

from django.conf import settings
from django.db import models
from django.db.models import F, Q


class Project(models.Model):
    """
    A contractor's project. Creating one is gated by billing entitlements.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    contractor = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='projects',
    )
    project_name = models.CharField(max_length=255)
    client_email = models.EmailField()
    start_date = models.DateField()
    end_date = models.DateField()
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'projects'
        verbose_name = 'Project'
        verbose_name_plural = 'Projects'
        ordering = ['-created_at']
        constraints = [
            models.CheckConstraint(
                condition=Q(end_date__gt=F('start_date')),
                name='project_dates_ordered',
            ),
        ]

    def __str__(self):
        return self.project_name
