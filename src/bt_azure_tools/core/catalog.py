"""Catalog of ARM resource types and the access levels offered for each.

Each access level maps to one or more built-in RBAC role names. Keep the
structure stable; the resource IAM workflow resolves levels by name.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class ResourceAccessLevel:
    name: str
    description: str
    role_names: tuple[str, ...]


@dataclass(frozen=True, slots=True)
class SupportedResourceType:
    id: str
    display_name: str
    arm_type: str
    description: str
    access_levels: tuple[ResourceAccessLevel, ...]
    kind_contains: str | None = None

    def access_level(self, name: str) -> ResourceAccessLevel | None:
        wanted = name.strip().casefold()
        for level in self.access_levels:
            if level.name.casefold() == wanted:
                return level
        return None


def _level(name: str, description: str, *role_names: str) -> ResourceAccessLevel:
    return ResourceAccessLevel(name=name, description=description, role_names=role_names)


_OWNER = _level("Owner", "Full control over resource and access assignments.", "Owner")
_CONTRIBUTOR = _level("Contributor", "Full management access except access control.", "Contributor")


SUPPORTED_TYPES: tuple[SupportedResourceType, ...] = (
    SupportedResourceType(
        id="azure-openai",
        display_name="Azure OpenAI",
        arm_type="Microsoft.CognitiveServices/accounts",
        description="Assign OpenAI-specific RBAC roles to Cognitive Services OpenAI accounts.",
        access_levels=(
            _level("OpenAI User", "Use deployed models and OpenAI endpoints.", "Cognitive Services OpenAI User"),
            _level(
                "OpenAI Contributor",
                "Manage OpenAI deployments and model operations.",
                "Cognitive Services OpenAI Contributor",
            ),
            _level("Cognitive Services User", "Use general Cognitive Services data-plane operations.", "Cognitive Services User"),
            _level(
                "Cognitive Services Contributor",
                "Manage Cognitive Services account settings and deployments.",
                "Cognitive Services Contributor",
            ),
            _level("Reader", "Read-only access to the resource configuration.", "Reader"),
            _OWNER,
        ),
        kind_contains="openai",
    ),
    SupportedResourceType(
        id="storage-account",
        display_name="Azure Storage Account",
        arm_type="Microsoft.Storage/storageAccounts",
        description="Assign control-plane and data-plane RBAC roles for storage accounts.",
        access_levels=(
            _level("Storage Reader", "Read-only access to storage account configuration.", "Reader"),
            _level("Storage Contributor", "Manage storage account configuration.", "Storage Account Contributor"),
            _level("Storage Owner", "Full control over storage account and access assignments.", "Owner"),
            _level("Blob Reader", "Read blob data only.", "Storage Blob Data Reader"),
            _level("Blob Contributor", "Read and write blob data.", "Storage Blob Data Contributor"),
            _level("Blob Owner", "Full blob data permissions including ACL management.", "Storage Blob Data Owner"),
        ),
    ),
    SupportedResourceType(
        id="key-vault",
        display_name="Azure Key Vault",
        arm_type="Microsoft.KeyVault/vaults",
        description="Assign Key Vault RBAC roles for control-plane and data-plane scenarios.",
        access_levels=(
            _level("Vault Reader", "Read vault metadata and configuration.", "Reader"),
            _level("Vault Contributor", "Manage vault configuration (not secret values).", "Key Vault Contributor"),
            _level("Secrets User", "Read secret values.", "Key Vault Secrets User"),
            _level("Secrets Officer", "Manage secret lifecycle and values.", "Key Vault Secrets Officer"),
            _level("Certificates Officer", "Manage certificate lifecycle.", "Key Vault Certificates Officer"),
            _level("Crypto User", "Perform cryptographic operations using vault keys.", "Key Vault Crypto User"),
            _level("Crypto Officer", "Manage key lifecycle and cryptographic policies.", "Key Vault Crypto Officer"),
            _level("Administrator", "Full Key Vault data-plane administration.", "Key Vault Administrator"),
            _OWNER,
        ),
    ),
    SupportedResourceType(
        id="sql-server",
        display_name="Azure SQL Server",
        arm_type="Microsoft.Sql/servers",
        description="Assign control-plane RBAC roles for SQL server management.",
        access_levels=(
            _level("Reader", "View SQL server settings and metadata.", "Reader"),
            _level("SQL Server Contributor", "Manage SQL server configuration and databases.", "SQL Server Contributor"),
            _level("SQL DB Contributor", "Manage SQL databases under the server scope.", "SQL DB Contributor"),
            _level("SQL Security Manager", "Manage SQL security-related settings.", "SQL Security Manager"),
            _level("Contributor", "General management access to this SQL resource scope.", "Contributor"),
            _OWNER,
        ),
    ),
    SupportedResourceType(
        id="app-service",
        display_name="Azure App Service",
        arm_type="Microsoft.Web/sites",
        description="Assign RBAC roles for App Service web apps, APIs, and functions.",
        access_levels=(
            _level("Reader", "View app configuration and metrics.", "Reader"),
            _level("Website Contributor", "Manage web apps but not access policies.", "Website Contributor"),
            _CONTRIBUTOR,
            _OWNER,
        ),
    ),
    SupportedResourceType(
        id="function-app",
        display_name="Azure Functions",
        arm_type="Microsoft.Web/sites",
        description="Assign RBAC roles for Azure Function apps.",
        access_levels=(
            _level("Reader", "View function app configuration and metrics.", "Reader"),
            _level("Website Contributor", "Manage function apps but not access policies.", "Website Contributor"),
            _CONTRIBUTOR,
            _OWNER,
        ),
        kind_contains="functionapp",
    ),
    SupportedResourceType(
        id="cosmos-db",
        display_name="Azure Cosmos DB",
        arm_type="Microsoft.DocumentDB/databaseAccounts",
        description="Assign control-plane and data-plane RBAC roles for Cosmos DB accounts.",
        access_levels=(
            _level("Reader", "Read Cosmos DB account configuration and metadata.", "Reader"),
            _level("Cosmos DB Account Reader", "Read Cosmos DB account and database metadata.", "Cosmos DB Account Reader Role"),
            _level("Cosmos DB Operator", "Manage Cosmos DB accounts but not data access.", "Cosmos DB Operator"),
            _level("Data Reader", "Read data from Cosmos DB containers.", "Cosmos DB Built-in Data Reader"),
            _level("Data Contributor", "Read and write data in Cosmos DB containers.", "Cosmos DB Built-in Data Contributor"),
            _level("Contributor", "Manage Cosmos DB account configuration and resources.", "DocumentDB Account Contributor"),
            _OWNER,
        ),
    ),
    SupportedResourceType(
        id="service-bus",
        display_name="Azure Service Bus",
        arm_type="Microsoft.ServiceBus/namespaces",
        description="Assign RBAC roles for Service Bus messaging namespaces.",
        access_levels=(
            _level("Reader", "View Service Bus namespace configuration.", "Reader"),
            _level(
                "Data Receiver",
                "Receive messages from Service Bus queues and subscriptions.",
                "Azure Service Bus Data Receiver",
            ),
            _level("Data Sender", "Send messages to Service Bus queues and topics.", "Azure Service Bus Data Sender"),
            _level("Data Owner", "Full data-plane access to Service Bus resources.", "Azure Service Bus Data Owner"),
            _level("Contributor", "Manage Service Bus namespace configuration.", "Contributor"),
            _OWNER,
        ),
    ),
    SupportedResourceType(
        id="event-hub",
        display_name="Azure Event Hubs",
        arm_type="Microsoft.EventHub/namespaces",
        description="Assign RBAC roles for Event Hub streaming namespaces.",
        access_levels=(
            _level("Reader", "View Event Hubs namespace configuration.", "Reader"),
            _level("Data Receiver", "Receive events from Event Hubs.", "Azure Event Hubs Data Receiver"),
            _level("Data Sender", "Send events to Event Hubs.", "Azure Event Hubs Data Sender"),
            _level("Data Owner", "Full data-plane access to Event Hubs resources.", "Azure Event Hubs Data Owner"),
            _level("Contributor", "Manage Event Hubs namespace configuration.", "Contributor"),
            _OWNER,
        ),
    ),
    SupportedResourceType(
        id="container-registry",
        display_name="Azure Container Registry",
        arm_type="Microsoft.ContainerRegistry/registries",
        description="Assign RBAC roles for container image registries.",
        access_levels=(
            _level("Reader", "View registry configuration and metadata.", "Reader"),
            _level("AcrPull", "Pull container images from the registry.", "AcrPull"),
            _level("AcrPush", "Push and pull container images.", "AcrPush"),
            _level("AcrDelete", "Delete images and repositories from the registry.", "AcrDelete"),
            _level("Contributor", "Manage registry configuration and resources.", "Contributor"),
            _OWNER,
        ),
    ),
    SupportedResourceType(
        id="aks",
        display_name="Azure Kubernetes Service",
        arm_type="Microsoft.ContainerService/managedClusters",
        description="Assign RBAC roles for AKS managed Kubernetes clusters.",
        access_levels=(
            _level("Reader", "View cluster configuration and metadata.", "Reader"),
            _level(
                "Cluster User",
                "List cluster user credentials for kubeconfig access.",
                "Azure Kubernetes Service Cluster User Role",
            ),
            _level(
                "Cluster Admin",
                "List cluster admin credentials for full kubeconfig access.",
                "Azure Kubernetes Service Cluster Admin Role",
            ),
            _level(
                "RBAC Reader",
                "Read-only access to most Kubernetes objects in namespaces.",
                "Azure Kubernetes Service RBAC Reader",
            ),
            _level(
                "RBAC Writer",
                "Read/write access to most Kubernetes objects in namespaces.",
                "Azure Kubernetes Service RBAC Writer",
            ),
            _level(
                "RBAC Admin",
                "Full access to Kubernetes objects in namespaces and manage roles.",
                "Azure Kubernetes Service RBAC Admin",
            ),
            _level(
                "RBAC Cluster Admin",
                "Full cluster-wide access to all Kubernetes objects.",
                "Azure Kubernetes Service RBAC Cluster Admin",
            ),
            _level(
                "Contributor",
                "Manage AKS cluster configuration and resources.",
                "Azure Kubernetes Service Contributor Role",
            ),
            _OWNER,
        ),
    ),
    SupportedResourceType(
        id="container-app",
        display_name="Azure Container Apps",
        arm_type="Microsoft.App/containerApps",
        description="Assign RBAC roles for Container Apps serverless containers.",
        access_levels=(
            _level("Reader", "View Container App configuration and metadata.", "Reader"),
            _level(
                "ContainerApp Contributor",
                "Manage Container Apps and their revisions.",
                "Azure ContainerApps Session Executor",
            ),
            _CONTRIBUTOR,
            _OWNER,
        ),
    ),
    SupportedResourceType(
        id="event-grid-topic",
        display_name="Azure Event Grid Topic",
        arm_type="Microsoft.EventGrid/topics",
        description="Assign RBAC roles for Event Grid custom topics.",
        access_levels=(
            _level("Reader", "View Event Grid topic configuration.", "Reader"),
            _level("Data Sender", "Send events to Event Grid topics.", "EventGrid Data Sender"),
            _level("EventGrid Contributor", "Manage Event Grid topics and subscriptions.", "EventGrid Contributor"),
            _CONTRIBUTOR,
            _OWNER,
        ),
    ),
    SupportedResourceType(
        id="signalr",
        display_name="Azure SignalR Service",
        arm_type="Microsoft.SignalRService/SignalR",
        description="Assign RBAC roles for SignalR real-time messaging service.",
        access_levels=(
            _level("Reader", "View SignalR resource configuration.", "Reader"),
            _level("SignalR App Server", "Allow app server to access SignalR with AAD auth.", "SignalR App Server"),
            _level("SignalR Service Owner", "Full data-plane access to SignalR Service APIs.", "SignalR Service Owner"),
            _level("Contributor", "Manage SignalR resource configuration.", "SignalR Contributor"),
            _OWNER,
        ),
    ),
    SupportedResourceType(
        id="app-config",
        display_name="Azure App Configuration",
        arm_type="Microsoft.AppConfiguration/configurationStores",
        description="Assign RBAC roles for App Configuration stores.",
        access_levels=(
            _level("Reader", "View App Configuration store metadata.", "Reader"),
            _level("Data Reader", "Read configuration key-values and feature flags.", "App Configuration Data Reader"),
            _level("Data Owner", "Read, write, and delete configuration key-values.", "App Configuration Data Owner"),
            _level("Contributor", "Manage App Configuration store settings.", "Contributor"),
            _OWNER,
        ),
    ),
    SupportedResourceType(
        id="redis-cache",
        display_name="Azure Cache for Redis",
        arm_type="Microsoft.Cache/redis",
        description="Assign RBAC roles for Azure Cache for Redis instances.",
        access_levels=(
            _level("Reader", "View Redis cache configuration and metrics.", "Reader"),
            _level("Data Access Reader", "Read data from Redis cache via data-plane.", "Redis Cache Data Access Reader"),
            _level("Data Contributor", "Read and write data in Redis cache via data-plane.", "Redis Cache Contributor"),
            _level("Contributor", "Manage Redis cache configuration and resources.", "Contributor"),
            _OWNER,
        ),
    ),
    SupportedResourceType(
        id="search-service",
        display_name="Azure AI Search",
        arm_type="Microsoft.Search/searchServices",
        description="Assign RBAC roles for Azure AI Search (formerly Cognitive Search).",
        access_levels=(
            _level("Reader", "View search service configuration and metadata.", "Reader"),
            _level("Index Data Reader", "Read data from search indexes.", "Search Index Data Reader"),
            _level("Index Data Contributor", "Read, write, and delete data in search indexes.", "Search Index Data Contributor"),
            _level(
                "Search Service Contributor",
                "Manage search service configuration and indexes.",
                "Search Service Contributor",
            ),
            _CONTRIBUTOR,
            _OWNER,
        ),
    ),
    SupportedResourceType(
        id="postgresql-flexible",
        display_name="Azure Database for PostgreSQL Flexible Server",
        arm_type="Microsoft.DBforPostgreSQL/flexibleServers",
        description="Assign RBAC roles for PostgreSQL Flexible Server management.",
        access_levels=(
            _level("Reader", "View PostgreSQL server configuration and metadata.", "Reader"),
            _level("Contributor", "Manage PostgreSQL server configuration and databases.", "Contributor"),
            _OWNER,
        ),
    ),
    SupportedResourceType(
        id="managed-identity",
        display_name="Managed Identity",
        arm_type="Microsoft.ManagedIdentity/userAssignedIdentities",
        description="Assign RBAC roles for user-assigned managed identities.",
        access_levels=(
            _level("Reader", "View managed identity properties.", "Reader"),
            _level("Managed Identity Operator", "Assign and use the managed identity on resources.", "Managed Identity Operator"),
            _level(
                "Managed Identity Contributor",
                "Create, delete, and manage user-assigned identities.",
                "Managed Identity Contributor",
            ),
            _OWNER,
        ),
    ),
    SupportedResourceType(
        id="api-management",
        display_name="Azure API Management",
        arm_type="Microsoft.ApiManagement/service",
        description="Assign RBAC roles for API Management service instances.",
        access_levels=(
            _level("Reader", "Read-only access to API Management and its APIs.", "API Management Service Reader Role"),
            _level(
                "Service Operator",
                "Manage the service but not its APIs or policies.",
                "API Management Service Operator Role",
            ),
            _level("Service Contributor", "Manage the service and its APIs.", "API Management Service Contributor"),
            _CONTRIBUTOR,
            _OWNER,
        ),
    ),
    SupportedResourceType(
        id="static-web-app",
        display_name="Azure Static Web Apps",
        arm_type="Microsoft.Web/staticSites",
        description="Assign RBAC roles for Static Web App resources.",
        access_levels=(
            _level("Reader", "View Static Web App configuration.", "Reader"),
            _level("Static Web App Contributor", "Manage Static Web Apps including deployment.", "Contributor"),
            _OWNER,
        ),
    ),
    SupportedResourceType(
        id="monitor-workspace",
        display_name="Azure Monitor Workspace",
        arm_type="Microsoft.Monitor/accounts",
        description="Assign RBAC roles for Azure Monitor (Prometheus) workspaces.",
        access_levels=(
            _level("Reader", "View monitoring data and workspace configuration.", "Reader"),
            _level("Monitoring Reader", "Read monitoring data from all sources.", "Monitoring Reader"),
            _level("Monitoring Contributor", "Manage monitoring settings and write monitoring data.", "Monitoring Contributor"),
            _OWNER,
        ),
    ),
    SupportedResourceType(
        id="log-analytics",
        display_name="Log Analytics Workspace",
        arm_type="Microsoft.OperationalInsights/workspaces",
        description="Assign RBAC roles for Log Analytics workspaces.",
        access_levels=(
            _level("Reader", "View workspace configuration and metadata.", "Reader"),
            _level("Log Analytics Reader", "Read and search all monitoring data.", "Log Analytics Reader"),
            _level(
                "Log Analytics Contributor",
                "Read monitoring data and manage workspace settings.",
                "Log Analytics Contributor",
            ),
            _CONTRIBUTOR,
            _OWNER,
        ),
    ),
    SupportedResourceType(
        id="app-insights",
        display_name="Application Insights",
        arm_type="Microsoft.Insights/components",
        description="Assign RBAC roles for Application Insights resources.",
        access_levels=(
            _level("Reader", "View Application Insights configuration.", "Reader"),
            _level("Monitoring Reader", "Read telemetry and monitoring data.", "Monitoring Reader"),
            _level("Monitoring Contributor", "Manage monitoring settings and data.", "Monitoring Contributor"),
            _level(
                "Application Insights Component Contributor",
                "Manage Application Insights components.",
                "Application Insights Component Contributor",
            ),
            _OWNER,
        ),
    ),
)

SUPPORTED_TYPE_BY_ID: dict[str, SupportedResourceType] = {entry.id: entry for entry in SUPPORTED_TYPES}


def get_resource_type(type_id: str) -> SupportedResourceType | None:
    return SUPPORTED_TYPE_BY_ID.get(type_id.strip().lower())


__all__ = [
    "ResourceAccessLevel",
    "SUPPORTED_TYPES",
    "SUPPORTED_TYPE_BY_ID",
    "SupportedResourceType",
    "get_resource_type",
]
