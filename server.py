import os

import uvicorn  # type: ignore

from tenant_rbac.utils import get_logger

log = get_logger(__name__)

if __name__ == "__main__":
    port = int(os.environ.get("PORT", "8000"))
    log.info(f"Running RBAC server on port {port}")
    uvicorn.run("tenant_rbac.main:app", reload=True, host="127.0.0.1", port=port)
