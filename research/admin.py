"""Django admin configuration for research models."""

from django.contrib import admin

from .models import ActivityLog, Experiment, ExperimentResponse, Persona


@admin.register(Persona)
class PersonaAdmin(admin.ModelAdmin):
    list_display = ('name', 'owner', 'age', 'occupation', 'created_at')
    list_filter = ('owner',)
    search_fields = ('name', 'description', 'occupation')


class ExperimentResponseInline(admin.TabularInline):
    """Shows an experiment's responses on its admin page."""
    model = ExperimentResponse
    extra = 0
    fields = ('persona', 'content', 'sentiment_label', 'sentiment_score', 'created_at')
    readonly_fields = ('created_at',)


@admin.register(Experiment)
class ExperimentAdmin(admin.ModelAdmin):
    list_display = ('title', 'owner', 'status', 'created_at', 'completed_at')
    list_filter = ('status',)
    search_fields = ('title', 'description', 'prompt')
    filter_horizontal = ('personas',)
    inlines = (ExperimentResponseInline,)


@admin.register(ExperimentResponse)
class ExperimentResponseAdmin(admin.ModelAdmin):
    list_display = ('experiment', 'persona', 'sentiment_label', 'sentiment_score', 'model_name', 'created_at')
    list_filter = ('sentiment_label',)


admin.site.register(ActivityLog)
