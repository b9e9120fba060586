"""
Document storage: uploads and time-limited download links.

A signed link carries the document id signed with a timestamp; the download
view rejects links older than their TTL or with a bad signature.
"""
import mimetypes

from django.conf import settings
from django.core import signing
from django.core.exceptions import ValidationError
from django.urls import reverse

from apps.core.repository import atomic_write
from apps.documents.models import Document

SIGNING_SALT = 'documents.download'
MAX_UPLOAD_SIZE = 20 * 1024 * 1024


def upload_file(uploaded_file, description='', **linkage):
    """
    Store an uploaded file and link it to one record.

    Usage:
        upload_file(request.FILES['file'], booking=booking)
    """
    unknown = set(linkage) - set(Document.LINK_FIELDS)
    if unknown:
        raise ValueError(f"Unknown document link: {', '.join(sorted(unknown))}")
    if sum(1 for value in linkage.values() if value is not None) != 1:
        raise ValidationError('A document must be linked to exactly one record.')
    if uploaded_file.size > MAX_UPLOAD_SIZE:
        raise ValidationError('File is too large (20 MB maximum).')

    file_type = getattr(uploaded_file, 'content_type', '') or \
        mimetypes.guess_type(uploaded_file.name)[0] or 'application/octet-stream'

    with atomic_write('documents'):
        document = Document(
            file_name=uploaded_file.name,
            file_type=file_type,
            file_size=uploaded_file.size,
            description=description,
            **linkage
        )
        document.file.save(uploaded_file.name, uploaded_file, save=False)
        document.save()
    return document


def sign_document(document):
    return signing.TimestampSigner(salt=SIGNING_SALT).sign(str(document.pk))


def get_signed_url(document, ttl_seconds=None):
    """Relative download URL valid for `ttl_seconds` (SIGNED_URL_TTL by default)."""
    ttl = ttl_seconds or settings.SIGNED_URL_TTL
    token = sign_document(document)
    return f"{reverse('documents:document_download', args=[token])}?ttl={int(ttl)}"


def resolve_signed_token(token, ttl_seconds=None):
    """
    Document id from a signed token.

    Raises:
        signing.SignatureExpired, signing.BadSignature
    """
    ttl = min(int(ttl_seconds or settings.SIGNED_URL_TTL), settings.SIGNED_URL_TTL)
    return int(signing.TimestampSigner(salt=SIGNING_SALT).unsign(token, max_age=ttl))
