"""
Engine configuration: frozen defaults, YAML/env loading and validation.
"""
