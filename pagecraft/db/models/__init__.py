from pagecraft.db.models.component_template import ComponentTemplate
from pagecraft.db.models.page import PAGE_STATUSES, Page
from pagecraft.db.models.page_component import PageComponent
from pagecraft.db.models.page_version import PageVersion

__all__ = ["ComponentTemplate", "PAGE_STATUSES", "Page", "PageComponent", "PageVersion"]
