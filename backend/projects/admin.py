from django.contrib import admin

from .models import Project


@admin.register(Project)
class ProjectAdmin(admin.ModelAdmin):
    """
    Project admin configuration
    """
    list_display = ('project_name', 'contractor', 'client_email', 'start_date', 'end_date', 'created_at')
    search_fields = ('project_name', 'client_email', 'contractor__email')
    list_filter = ('start_date', 'created_at')
    ordering = ('-created_at',)
    raw_id_fields = ('contractor',)
    readonly_fields = ('created_at', 'updated_at')
