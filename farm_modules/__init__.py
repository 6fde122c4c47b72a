"""
Farm domain modules.

Each module owns its models, ORM tables, workflows, configuration and a
service facade; infrastructure comes from ``farm_kernel``.
"""
