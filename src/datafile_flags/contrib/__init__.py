"""Optional integrations for datafile-flags.

- :mod:`datafile_flags.contrib.logging`: structured evaluation logging.
- :mod:`datafile_flags.contrib.otel`: OpenTelemetry tracing and metrics.
- :mod:`datafile_flags.contrib.openfeature`: OpenFeature provider.

Each module is imported explicitly so that its optional dependency is only
required when it is used.
"""
