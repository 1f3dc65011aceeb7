"""Page-number pagination for list endpoints, with RFC 5988 Link headers."""
from __future__ import annotations
from typing import List, Optional

from fastapi import Query, Request
from pydantic import BaseModel

from coursemodules.core import config


class PageParams(BaseModel):
    page: int
    per_page: int


def page_params(
    page: int = Query(default=1, ge=1, description="1-based page number."),
    per_page: Optional[int] = Query(default=None, ge=1, description="Items per page."),
) -> PageParams:
    per_page = per_page or config.DEFAULT_PER_PAGE
    return PageParams(page=page, per_page=min(per_page, config.MAX_PER_PAGE))


def link_header(request: Request, params: PageParams, total: int) -> str:
    last = max(1, -(-total // params.per_page))

    def _url(page: int) -> str:
        return str(request.url.include_query_params(page=page, per_page=params.per_page))

    links: List[str] = [f'<{_url(params.page)}>; rel="current"']
    if params.page < last:
        links.append(f'<{_url(params.page + 1)}>; rel="next"')
    if params.page > 1:
        links.append(f'<{_url(params.page - 1)}>; rel="prev"')
    links.append(f'<{_url(1)}>; rel="first"')
    links.append(f'<{_url(last)}>; rel="last"')
    return ",".join(links)
