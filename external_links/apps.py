from django.apps import AppConfig
from django.core.signals import setting_changed


class ExternalLinksConfig(AppConfig):
    """Configuration for the external_links Django app."""

    name = 'external_links'
    verbose_name = 'External links'

    def ready(self) -> None:
        from .conf import reset_site_config
        from .services import reset_site_annotator

        setting_changed.connect(reset_site_config, dispatch_uid='external_links.reset_site_config')
        setting_changed.connect(reset_site_annotator, dispatch_uid='external_links.reset_site_annotator')
