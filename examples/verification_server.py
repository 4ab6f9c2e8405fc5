"""Example verification server backed by whatever storage the environment selects."""

from __future__ import annotations

import uvicorn

from altguard import VerifierConfig, build_service
from altguard.config import configure_logging
from altguard.http import create_app


def main() -> None:
    config = VerifierConfig.from_env()
    configure_logging(config.log_level)
    # NullSink only logs; plug a platform-backed EnforcementSink in here.
    service = build_service(config=config)
    app = create_app(service.coordinator, config, sweeper=service.sweeper)
    uvicorn.run(app, host="0.0.0.0", port=config.port)


if __name__ == "__main__":
    main()
