"""Clone orchestration, network resolution and configuration."""
