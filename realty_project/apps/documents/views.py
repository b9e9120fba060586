"""Documents Views - upload, signed download links and removal."""
from django.contrib import messages
from django.contrib.auth.decorators import login_required
from django.core import signing
from django.core.exceptions import PermissionDenied, ValidationError
from django.http import FileResponse, Http404, JsonResponse
from django.shortcuts import get_object_or_404, redirect
from django.urls import reverse
from django.views.decorators.http import require_POST

from apps.core.audit import log_audit
from apps.core.exceptions import PersistenceError
from apps.core.mixins import get_scoped_object_or_404
from apps.core.utils import PermissionChecker, parse_int
from apps.crm.models import Customer
from apps.finance.models import Expense
from apps.sales.models import Booking, Payment, UnitSale
from .forms import DocumentUploadForm
from .models import Document
from .services import get_signed_url, resolve_signed_token, upload_file

LINK_TARGETS = {
    'booking': (Booking, 'sales:booking_detail'),
    'payment': (Payment, 'sales:payment_list'),
    'expense': (Expense, 'finance:expense_list'),
    'customer': (Customer, 'crm:customer_detail'),
    'sale': (UnitSale, 'sales:unit_sale_list'),
}


def _require(request, permission_type):
    if not PermissionChecker.has_permission(request.user, 'documents', permission_type):
        raise PermissionDenied('You do not have permission to manage documents.')


def _visible(request, document):
    return document.is_shared or request.scope.permits(document.project_id)


def _ttl(request):
    """Link lifetime in seconds from `?ttl=`; None (the default lifetime) unless positive."""
    ttl = parse_int(request.GET.get('ttl'))
    return ttl if ttl is not None and ttl > 0 else None


def _redirect_to_linked(kind, obj):
    url_name = LINK_TARGETS[kind][1]
    if url_name.endswith('_detail'):
        return redirect(url_name, pk=obj.pk)
    if kind == 'expense':
        return redirect(f"{reverse(url_name)}?focus={obj.pk}")
    return redirect(url_name)


@login_required
@require_POST
def document_upload(request, kind, pk):
    _require(request, 'create')
    if kind not in LINK_TARGETS:
        raise Http404('Unknown document target.')
    model = LINK_TARGETS[kind][0]
    if kind == 'customer':
        obj = get_object_or_404(model, pk=pk, is_active=True)
    else:
        obj = get_scoped_object_or_404(request, model.objects.filter(is_active=True), pk=pk)

    form = DocumentUploadForm(request.POST, request.FILES)
    if form.is_valid():
        try:
            document = upload_file(
                form.cleaned_data['file'], form.cleaned_data['description'], **{kind: obj}
            )
            log_audit(request.user, 'create', 'Document', document.pk,
                      {'file_name': document.file_name, kind: obj.pk}, request=request)
            messages.success(request, f'{document.file_name} uploaded.')
        except ValidationError as e:
            messages.error(request, ' '.join(e.messages))
        except PersistenceError as e:
            messages.error(request, str(e))
    else:
        messages.error(request, 'Choose a file to upload.')
    return _redirect_to_linked(kind, obj)


@login_required
def document_link(request, pk):
    """Signed, time-limited download URL for a document."""
    _require(request, 'view')
    document = get_object_or_404(Document, pk=pk, is_active=True)
    if not _visible(request, document):
        raise Http404('No document matches the given query.')
    return JsonResponse({'url': request.build_absolute_uri(get_signed_url(document, _ttl(request)))})


@login_required
def document_download(request, token):
    try:
        document_id = resolve_signed_token(token, _ttl(request))
    except signing.SignatureExpired:
        raise Http404('This download link has expired.')
    except signing.BadSignature:
        raise Http404('Invalid download link.')

    document = get_object_or_404(Document, pk=document_id, is_active=True)
    if not _visible(request, document):
        raise Http404('No document matches the given query.')
    return FileResponse(document.file.open('rb'), as_attachment=True, filename=document.file_name)


@login_required
@require_POST
def document_delete(request, pk):
    _require(request, 'delete')
    document = get_object_or_404(Document, pk=pk, is_active=True)
    if not _visible(request, document):
        raise Http404('No document matches the given query.')
    kind, obj = document.linked_kind, document.linked_object
    document.is_active = False
    document.save(update_fields=['is_active', 'updated_at', 'updated_by'])
    log_audit(request.user, 'delete', 'Document', document.pk, {'file_name': document.file_name}, request=request)
    messages.success(request, f'{document.file_name} removed.')
    if kind is None:
        return redirect('dashboard')
    return _redirect_to_linked(kind, obj)
