# donorhub/blueprints/__init__.py
# (dotted module, blueprint attr, url prefix); registered in this order by create_app()
BLUEPRINTS = [
    ("donorhub.blueprints.health", "bp", "/api"),
    ("donorhub.blueprints.webhooks", "bp", "/api/webhooks"),
    ("donorhub.blueprints.checkout", "bp", "/api/checkout"),
    ("donorhub.blueprints.metrics", "bp", "/api/metrics"),
]
