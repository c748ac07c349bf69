"""
Print Render Backend - webhook service for rendered print projects

This package provides a FastAPI-based web service that receives
render-complete webhooks for photo book orders and turns each project's
rendered archive into one deliverable PDF. It enables:

- Downloading and unpacking the renderer's tar archive per project
- Locating the cover and pages PDFs from the webhook manifest
- Merging cover and pages into a single document
- Per-project failure isolation across multi-project orders
- Recording order values in a CSV ledger and delivering PDFs over WhatsApp

Key Components:
    - main: FastAPI application and HTTP endpoint definitions
    - pipeline: ProjectPipeline / OrderPipeline orchestration
    - archive, assets, documents, storage: the individual pipeline stages
    - fulfillment: order value, ledger and delivery per processed project
    - configuration: Settings loading (defaults, YAML, environment)

Usage:
    Run the API server with:
        uvicorn print_render_backend.main:app --host 0.0.0.0 --port 3000

Architecture Principles:
    - Every project gets its own workspace, removed before processing returns
    - One failing project never aborts the rest of an order
    - No automatic retries; upstream webhook redelivery is the recovery path
"""
