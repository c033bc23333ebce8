#!/usr/bin/env python
"""
TeamSpace Application Entry Point.

Starts the development server and prints which billing and AI
integrations are configured, with the webhook URLs to register.
"""
import os
from dotenv import load_dotenv

load_dotenv()

from teamspace import create_app

app = create_app(os.environ.get('FLASK_ENV', 'development'))

INTEGRATIONS = (
    ('Mercado Pago', 'MP_ACCESS_TOKEN'),
    ('Stripe', 'STRIPE_SECRET_KEY'),
    ('Stripe webhooks', 'STRIPE_WEBHOOK_SECRET'),
    ('Gemini', 'GEMINI_API_KEY'),
    ('Sweeper cron secret', 'CRON_SECRET'),
)


def integration_lines():
    return '\n'.join(
        f"      {label + ':':<22}{'configured' if app.config.get(key) else 'missing (' + key + ')'}"
        for label, key in INTEGRATIONS
    )


if __name__ == '__main__':
    host = os.environ.get('FLASK_HOST', '0.0.0.0')
    port = int(os.environ.get('FLASK_PORT', 5000))
    debug = os.environ.get('FLASK_DEBUG', 'false').lower() == 'true'
    base_url = f'http://{host}:{port}'

    print(f"""
    ============================================================
              TEAMSPACE - Development Server
    ============================================================
      Running on: {base_url}
      Environment: {os.environ.get('FLASK_ENV', 'development')}
      Debug mode: {debug}

{integration_lines()}

      Mercado Pago webhook: {base_url}/api/webhooks/mercadopago
      Stripe webhook:       {base_url}/api/stripe/webhook
    ============================================================
    """)

    app.run(host=host, port=port, debug=debug)
