from client.client import ApiCallError, SlimApiClient, form_value

__all__ = ["ApiCallError", "SlimApiClient", "form_value"]
