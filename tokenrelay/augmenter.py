# -*- coding: utf-8 -*-

# Token Relay
# Copyright (C) 2025 Jwadow
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.
#
# This program is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE. See the
# GNU Affero General Public License for more details.
#
# You should have received a copy of the GNU Affero General Public License
# along with this program. If not, see <https://www.gnu.org/licenses/>.

"""Attaches the current session credentials to outgoing requests."""

from tokenrelay.config import CLIENT_ID_HEADER
from tokenrelay.models import AUTHORIZATION_HEADER, BEARER_PREFIX, RequestDescriptor
from tokenrelay.token_state import TokenState


class RequestAugmenter:
    """
    Adds Authorization and client id headers when a session exists.

    Requests made without a session go out unauthenticated; the server's
    401 is then handled by the classifier like any other.
    """

    def __init__(self, token_state: TokenState, client_id_header: str = CLIENT_ID_HEADER):
        self.token_state = token_state
        self.client_id_header = client_id_header

    def augment(self, descriptor: RequestDescriptor) -> RequestDescriptor:
        access_token = self.token_state.access_token
        if not access_token:
            return descriptor

        headers = {AUTHORIZATION_HEADER: f"{BEARER_PREFIX}{access_token}"}
        if self.token_state.user_id:
            headers[self.client_id_header] = self.token_state.user_id
        return descriptor.with_header_map(headers)
