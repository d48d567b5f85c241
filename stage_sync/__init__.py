import logging
from flask import Flask
from dotenv import load_dotenv

from .config import load_settings
from .utils import logger as log


def create_app(settings=None, client=None, notifier=None, catalog=None):
    """
    Build the webhook service. Collaborators default to the real ones built
    from settings; tests inject fakes. Invalid configuration raises
    ConfigError here, before any request is served.
    """
    if settings is None:
        load_dotenv()
        settings = load_settings()
    app = Flask(__name__)

    # =========================================================
    # Logging: reuse gunicorn handlers when present, plus stdout
    # =========================================================
    gunicorn_error = logging.getLogger("gunicorn.error")
    log.configure(settings.log_level, gunicorn_error.handlers)
    app.logger.setLevel(log.level_from_name(settings.log_level))

    # =========================================================
    # Collaborators (built once, injected)
    # =========================================================
    from .clients.shopify import MetafieldClient
    from .services.notify import build_notifier
    from .services.reconcile import Reconciler

    catalog = catalog or settings.catalog
    if client is None:
        client = MetafieldClient(settings.domain, settings.token,
                                 api_version=settings.api_version, timeout=settings.timeout)
    if notifier is None:
        notifier = build_notifier(settings)

    app.extensions["stage_sync"] = {
        "settings": settings,
        "catalog": catalog,
        "client": client,
        "notifier": notifier,
        "reconciler": Reconciler(client, catalog, namespace=settings.namespace, policy=settings.policy),
    }

    # =========================================================
    # Blueprints
    # =========================================================
    from .routes.webhooks import bp as webhooks_bp
    from .routes.setup_metafields import bp as setup_bp

    app.register_blueprint(webhooks_bp, url_prefix="/webhooks")
    app.register_blueprint(setup_bp, url_prefix="/setup/metafields")

    # =========================================================
    # Health check
    # =========================================================
    @app.get("/health")
    def health():
        return {"ok": True, "stages": len(catalog)}, 200

    log.info(f"[app] {len(catalog)} stages, policy={settings.policy}, "
             f"chat={'on' if settings.chat_enabled else 'off'}, email={'on' if settings.email_enabled else 'off'}")
    return app
