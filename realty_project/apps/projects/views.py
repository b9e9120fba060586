"""
Projects Views
"""
from django.contrib import messages
from django.db.models import Count, Q
from django.urls import reverse_lazy
from django.views.generic import CreateView, ListView, UpdateView

from apps.core.audit import log_audit
from apps.core.mixins import CreatePermissionMixin, PermissionRequiredMixin, UpdatePermissionMixin
from apps.core.utils import PermissionChecker
from .forms import ProjectForm
from .models import Project


class ProjectListView(PermissionRequiredMixin, ListView):
    model = Project
    template_name = 'projects/project_list.html'
    context_object_name = 'projects'
    module_name = 'projects'

    def get_queryset(self):
        queryset = Project.objects.filter(is_active=True).annotate(
            unit_count=Count('units', filter=Q(units__is_active=True), distinct=True),
            available_count=Count('units', filter=Q(units__status='available', units__is_active=True), distinct=True),
        )
        scope = self.request.scope
        if scope.is_restricted:
            queryset = queryset.filter(pk=scope.assigned_project_id)
        return queryset

    def get_context_data(self, **kwargs):
        context = super().get_context_data(**kwargs)
        context['title'] = 'Projects'
        context['can_create'] = PermissionChecker.has_permission(self.request.user, 'projects', 'create')
        context['can_edit'] = PermissionChecker.has_permission(self.request.user, 'projects', 'edit')
        return context


class ProjectCreateView(CreatePermissionMixin, CreateView):
    model = Project
    form_class = ProjectForm
    template_name = 'core/form.html'
    success_url = reverse_lazy('projects:project_list')
    module_name = 'projects'

    def get_context_data(self, **kwargs):
        context = super().get_context_data(**kwargs)
        context['title'] = 'New Project'
        return context

    def form_valid(self, form):
        response = super().form_valid(form)
        log_audit(self.request.user, 'create', 'Project', self.object.pk, {'name': self.object.name})
        messages.success(self.request, f'Project {self.object.name} created.')
        return response


class ProjectUpdateView(UpdatePermissionMixin, UpdateView):
    model = Project
    form_class = ProjectForm
    template_name = 'core/form.html'
    success_url = reverse_lazy('projects:project_list')
    module_name = 'projects'

    def get_context_data(self, **kwargs):
        context = super().get_context_data(**kwargs)
        context['title'] = f'Edit {self.object.name}'
        return context

    def form_valid(self, form):
        response = super().form_valid(form)
        log_audit(self.request.user, 'update', 'Project', self.object.pk, {'fields': form.changed_data})
        messages.success(self.request, 'Project updated.')
        return response
