"""只读目录：programs 和 providers。"""

from django.db.models import Q

from .. import audit
from ..exceptions import NotFound
from ..models import Program, Provider


def list_programs(active_only=True):
    qs = Program.objects.all()
    if active_only:
        qs = qs.filter(active=True)
    return list(qs.order_by('name', 'id'))


def get_program(program_id):
    program = Program.objects.filter(id=program_id).first()
    if program is None:
        raise NotFound('Program', program_id)
    return program


def search_providers(search=None, page=0, size=audit.DEFAULT_PAGE_SIZE):
    qs = Provider.objects.filter(active=True)
    search = (search or '').strip()
    if search:
        qs = qs.filter(Q(name__icontains=search) | Q(npi__startswith=search) | Q(specialty__icontains=search))
    return audit.paginate(qs.order_by('name', 'id'), page, size)


def get_provider(provider_id):
    provider = Provider.objects.filter(id=provider_id).first()
    if provider is None:
        raise NotFound('Provider', provider_id)
    return provider
