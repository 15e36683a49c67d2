from django.conf import settings
from rest_framework.pagination import PageNumberPagination


class ListPagination(PageNumberPagination):
    """Caller picks the page size with ?perPage=, within the configured cap."""
    page_size_query_param = 'perPage'

    @property
    def page_size(self):
        return settings.EXAM_LIST_PAGE_SIZE

    @property
    def max_page_size(self):
        return settings.EXAM_LIST_MAX_PAGE_SIZE


class ResultListPagination(PageNumberPagination):
    """Fixed page size; the caller cannot change it."""

    @property
    def page_size(self):
        return settings.RESULT_LIST_PAGE_SIZE


def paginated_payload(paginator, data):
    """Same shape as ``get_paginated_response`` but as plain data for the envelope."""
    return {
        'count': paginator.page.paginator.count,
        'next': paginator.get_next_link(),
        'previous': paginator.get_previous_link(),
        'results': data,
    }
