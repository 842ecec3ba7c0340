"""Settings access package.

Module split:
    - `store`: key/value settings store interface and implementations.
    - `provider_config`: provider endpoints, setting keys, and the
      `GenerationConfig` snapshot passed explicitly to the image dispatcher.
"""
