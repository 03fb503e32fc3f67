"""
Configuration API Endpoints.

Read access plus the draft -> active -> archived transitions.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query

from api.dependencies import get_cache, get_store
from api.models import ConfigurationListResponse, ConfigurationResponse, configuration_payload
from domain.configuration import ConfigurationStatus
from domain.errors import ValidationError
from repositories.document_store import DocumentStore
from services.configuration_cache import ActiveConfigurationCache
from services.configuration_service import (
    activate_configuration,
    archive_configuration,
    get_configuration,
    init_email_template,
    list_all_configurations,
)

router = APIRouter()


@router.get(
    "/configurations",
    response_model=ConfigurationListResponse,
    summary="List Configurations",
)
def list_configurations(
    status: Optional[str] = Query(None, description="Filter by status ('draft', 'active', 'archived')"),
    store: DocumentStore = Depends(get_store),
):
    status_filter = None
    if status:
        try:
            status_filter = ConfigurationStatus(status)
        except ValueError:
            raise ValidationError(
                f"Invalid status. Must be 'draft', 'active' or 'archived', got '{status}'",
                fields=("status",),
            )

    configurations = list_all_configurations(store, status_filter)
    return ConfigurationListResponse(
        configurations=[configuration_payload(c) for c in configurations],
        total_count=len(configurations),
    )


@router.get(
    "/configurations/active",
    response_model=ConfigurationResponse,
    summary="Get Active Configuration",
    description="Read the active configuration through the process cache.",
)
def read_active_configuration(cache: ActiveConfigurationCache = Depends(get_cache)):
    configuration = cache.get_active_configuration()
    if configuration is None:
        return ConfigurationResponse(configuration=None, message="No active configuration")
    return ConfigurationResponse(configuration=configuration_payload(configuration))


@router.get(
    "/configurations/{configuration_id}",
    response_model=ConfigurationResponse,
    summary="Get Configuration",
)
def read_configuration(configuration_id: str, store: DocumentStore = Depends(get_store)):
    return ConfigurationResponse(configuration=configuration_payload(get_configuration(store, configuration_id)))


@router.post(
    "/configurations/{configuration_id}/activate",
    response_model=ConfigurationResponse,
    summary="Activate Configuration",
    description="Make a draft the single active configuration, archiving the previous one atomically.",
)
def activate(
    configuration_id: str,
    store: DocumentStore = Depends(get_store),
    cache: ActiveConfigurationCache = Depends(get_cache),
):
    """
    Activate a draft configuration.

    **Atomicity:** archiving the previously active configuration and activating
    this one are committed as one batch. Concurrent activations conflict (409)
    rather than leaving two active configurations.

    Only drafts can be activated; re-activating an active or archived
    configuration is rejected.
    """
    configuration = activate_configuration(store, cache, configuration_id)
    return ConfigurationResponse(
        configuration=configuration_payload(configuration),
        message="Configuration activated successfully",
    )


@router.post(
    "/configurations/{configuration_id}/archive",
    response_model=ConfigurationResponse,
    summary="Archive Configuration",
)
def archive(
    configuration_id: str,
    store: DocumentStore = Depends(get_store),
    cache: ActiveConfigurationCache = Depends(get_cache),
):
    configuration = archive_configuration(store, cache, configuration_id)
    return ConfigurationResponse(
        configuration=configuration_payload(configuration),
        message="Configuration archived successfully",
    )


@router.post(
    "/configurations/{configuration_id}/init-email-template",
    response_model=ConfigurationResponse,
    summary="Initialize Email Template",
    description="Set the default email template unless a customized one is already present.",
)
def initialize_email_template(
    configuration_id: str,
    store: DocumentStore = Depends(get_store),
    cache: ActiveConfigurationCache = Depends(get_cache),
):
    configuration = init_email_template(store, cache, configuration_id)
    return ConfigurationResponse(
        configuration=configuration_payload(configuration),
        message="Email template initialized successfully",
    )
