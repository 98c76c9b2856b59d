"""Router that serves every path with and without a trailing slash."""

from typing import Any, Callable

from fastapi import APIRouter
from fastapi.types import DecoratedCallable


class TrailingSlashRouter(APIRouter):
    """APIRouter that registers ``/path`` and ``/path/`` for each endpoint.

    Only the form without the slash appears in the OpenAPI schema, and no redirect
    is issued for the other form. Webhook senders such as Stripe do not follow
    redirects on POST.

    Examples:
        @router.get("/plans") - documented as /plans, answers /plans and /plans/
        @router.get("", include_in_schema=False) - answers the prefix itself and prefix/
    """

    def api_route(
        self, path: str, *, include_in_schema: bool = True, **kwargs: Any
    ) -> Callable[[DecoratedCallable], DecoratedCallable]:
        """Register the endpoint under both path forms.

        Args:
            path (str): The path for the endpoint, with or without a trailing slash.
            include_in_schema (bool): Whether the slashless form is documented.
            **kwargs: Passed on to ``APIRouter.api_route``.

        Returns:
            Callable[[DecoratedCallable], DecoratedCallable]: The registering decorator.
        """
        path = path.rstrip("/")

        add_path = super().api_route(path, include_in_schema=include_in_schema, **kwargs)
        add_slash_path = super().api_route(path + "/", include_in_schema=False, **kwargs)

        def decorator(func: DecoratedCallable) -> DecoratedCallable:
            add_slash_path(func)
            return add_path(func)

        return decorator
