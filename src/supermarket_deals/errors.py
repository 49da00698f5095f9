# ==============================================================================
#  Copyright 2025 Matthew Pounsett <matt@conundrum.com>
#
#  Licensed under the Apache License, Version 2.0 (the "License");
#  you may not use this file except in compliance with the License.
#  You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
#  Unless required by applicable law or agreed to in writing, software
#  distributed under the License is distributed on an "AS IS" BASIS,
#  WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
#  See the License for the specific language governing permissions and
#  limitations under the License.
# ==============================================================================
"""Exception hierarchy for supermarket-deals."""


class SupermarketDealsError(Exception):
    """Base class for every error reported to the user."""


class ValidationError(SupermarketDealsError):
    """Invalid search input, raised before any network request."""


class CredentialError(SupermarketDealsError):
    """The API keys could not be obtained from the Marktguru homepage."""


class UpstreamError(SupermarketDealsError):
    """The search API failed or returned a malformed response.

    Attributes:
        status_code: HTTP status of the failed response, or None when the
            response was received but could not be understood.
    """

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code

    @property
    def is_auth_failure(self) -> bool:
        return self.status_code in (401, 403)


class ConfigError(SupermarketDealsError):
    """Unsupported or invalid preference change."""


class UsageError(SupermarketDealsError):
    """Unknown command or option on the command line."""
