"""bt-azure-tools: privileged access orchestration for Azure SQL and ARM resources."""
