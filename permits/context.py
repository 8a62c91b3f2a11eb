from dataclasses import dataclass

import httpx

from permits import firebase
from permits.auth import TokenVerifier
from permits.cache import PreviewCache
from permits.converter import Converter
from permits.documents import TemplateLoader
from permits.firebase import IdentityClient, RealtimeDatabase
from permits.settings import Settings


@dataclass
class Context:
    """
    The collaborators of the request handlers, built once per process.
    """

    settings: Settings
    database: RealtimeDatabase
    identity: IdentityClient
    verifier: TokenVerifier
    cache: PreviewCache
    converter: Converter
    templates: TemplateLoader
    #: The HTTP client shared by the converter, the template loader and the token verifier
    client: httpx.AsyncClient

    async def aclose(self) -> None:
        await self.cache.aclose()
        await self.client.aclose()


def build_context(settings: Settings) -> Context:
    """
    :raises DependencyUnavailable: If Firebase is not configured.
    """
    app = firebase.initialize_app(settings)
    client = httpx.AsyncClient(timeout=settings.converter_timeout)
    return Context(
        settings=settings,
        database=RealtimeDatabase(app),
        identity=IdentityClient(app),
        verifier=TokenVerifier(settings.firebase_jwks_url, settings.firebase_project_id, client),
        cache=PreviewCache(settings.cache_url, settings.preview_cache_ttl),
        converter=Converter.from_settings(settings, client),
        templates=TemplateLoader(settings.templates_dir, client),
        client=client,
    )
