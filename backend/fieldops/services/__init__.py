# Overview: Workflow core services (engine, conversion, payments, visits, automations).
