"""
apiforge — Service Container
=============================

What:  Builds and holds every stateful service for one application instance.
How:   build_container() constructs the services explicitly from Settings,
       binds a persistence provider per resource, validates the binding
       table, then generates the CRUD endpoints for the built-in resources.
       Nothing here is a module-level singleton, so each test (and each
       CLI run) gets an isolated app.
Who:   create_app() (stored on app.state.container) and the CLI.

Built-in resources (all six operations on v1):
    foodEntry       food diary entries
    user            players / coaches / admins (unique email)
    nutritionGoal   per-user targets
"""

import logging
from dataclasses import dataclass
from typing import Callable, Mapping, Optional

from sqlalchemy.ext.asyncio import AsyncEngine

from apiforge.config import Settings
from apiforge.database import build_engine, build_session_factory
from apiforge.pipeline.chain import RequestPipeline
from apiforge.providers import InMemoryProvider, PersistenceProvider, ProviderRegistry
from apiforge.services.auth import AuthService, CustomAuthenticator
from apiforge.services.crud_generator import CrudGenerator, GenerateOptions
from apiforge.services.docs_generator import DocsGenerator
from apiforge.services.error_handler import ErrorHandler
from apiforge.services.rate_limiter import RateLimiter
from apiforge.services.registry import EndpointRegistry
from apiforge.services.route_analyzer import RouteAnalyzer
from apiforge.services.versioning import VersionPolicy, VersionResolver
from apiforge.validation.engine import ValidationEngine

logger = logging.getLogger(__name__)

BUILTIN_RESOURCES = ("foodEntry", "user", "nutritionGoal")

UNIQUE_FIELDS = {"user": ("email",)}


@dataclass
class Container:
    settings: Settings
    providers: ProviderRegistry
    registry: EndpointRegistry
    validation: ValidationEngine
    rate_limiter: RateLimiter
    auth: AuthService
    versioning: VersionResolver
    errors: ErrorHandler
    generator: CrudGenerator
    analyzer: RouteAnalyzer
    docs: DocsGenerator
    pipeline: RequestPipeline
    engine: Optional[AsyncEngine] = None

    def health_report(self):
        return self.analyzer.health(
            self.registry,
            auth_configured=self.auth.is_configured,
            validation_configured=any(d.validated for d in self.registry.all()),
            versioning_configured=bool(self.versioning.policy.supported_versions),
        )


def build_providers(settings: Settings, engine: Optional[AsyncEngine] = None) -> ProviderRegistry:
    """Bind every built-in resource to the configured persistence backend."""
    registry = ProviderRegistry()
    if settings.persistence_backend == "sqlalchemy":
        from apiforge.models.food_entry import FoodEntry
        from apiforge.models.nutrition_goal import NutritionGoal
        from apiforge.models.user import User
        from apiforge.providers.sql import SqlAlchemyProvider

        if engine is None:
            raise ValueError("The sqlalchemy persistence backend needs an engine")
        session_factory = build_session_factory(engine)
        models = {"foodEntry": FoodEntry, "user": User, "nutritionGoal": NutritionGoal}
        for name, model in models.items():
            registry.register(name, SqlAlchemyProvider(name, model, session_factory))
    else:
        for name in BUILTIN_RESOURCES:
            registry.register(name, InMemoryProvider(name, unique_fields=UNIQUE_FIELDS.get(name, ())))
    return registry


def build_container(
    settings: Settings,
    providers: Optional[Mapping[str, PersistenceProvider]] = None,
    custom_auth: Optional[CustomAuthenticator] = None,
    clock: Optional[Callable[[], float]] = None,
    generate_builtin: bool = True,
) -> Container:
    """
    Args:
        settings:          Application settings
        providers:         Resource → provider overrides (tests inject these)
        custom_auth:       Authenticator for AUTH_PROVIDER=custom
        clock:             Rate-limiter clock in epoch ms (tests inject one)
        generate_builtin:  Generate CRUD endpoints for BUILTIN_RESOURCES

    Raises:
        ConfigurationError: a built-in resource has no provider, or the auth
                            provider is misconfigured
    """
    engine = None
    if settings.persistence_backend == "sqlalchemy":
        engine = build_engine(settings)
    provider_registry = build_providers(settings, engine)
    for name, provider in (providers or {}).items():
        provider_registry.register(name, provider)
    provider_registry.validate(BUILTIN_RESOURCES if generate_builtin else ())

    registry = EndpointRegistry()
    validation = ValidationEngine(sanitize_input=settings.sanitize_input)
    limiter_kwargs = {"clock": clock} if clock is not None else {}
    rate_limiter = RateLimiter(
        max_requests=settings.rate_limit_max,
        window_ms=settings.rate_limit_window_ms,
        sweep_every=settings.rate_limit_sweep_every,
        **limiter_kwargs,
    )
    auth = AuthService.from_settings(settings, custom=custom_auth)
    versioning = VersionResolver(
        VersionPolicy.from_settings(settings),
        header_name=settings.version_header,
        query_param=settings.version_query_param,
    )
    errors = ErrorHandler(
        expose_stack_trace=settings.expose_stack_trace,
        is_production=settings.is_production,
        include_request_id=settings.include_request_id,
    )
    generator = CrudGenerator(settings, provider_registry, registry, validation, auth, rate_limiter)
    pipeline = RequestPipeline(
        registry,
        versioning.stage(),
        timeout_seconds=settings.request_timeout_seconds,
        fallback_stages=(rate_limiter.stage(),) if settings.rate_limit_enabled else (),
    )

    container = Container(
        settings=settings,
        providers=provider_registry,
        registry=registry,
        validation=validation,
        rate_limiter=rate_limiter,
        auth=auth,
        versioning=versioning,
        errors=errors,
        generator=generator,
        analyzer=RouteAnalyzer(),
        docs=DocsGenerator.from_settings(settings),
        pipeline=pipeline,
        engine=engine,
    )

    if generate_builtin:
        options = GenerateOptions(
            auth_required=settings.require_auth_by_default,
            validation_required=True,
            version=settings.default_version,
        )
        for resource in BUILTIN_RESOURCES:
            generator.generate(resource, options=options)
        logger.info("Registered %d endpoints for %d resources", len(registry), len(BUILTIN_RESOURCES))
    return container
