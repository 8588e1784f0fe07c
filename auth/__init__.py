"""auth/ -- Credential and session core for DadMail.

Layer rule: auth/ imports only stdlib + third-party libraries, plus
core/config for the Settings type in auth/factory.py.
It does NOT import from api/. api/ imports from auth/, not the other way around.
"""
