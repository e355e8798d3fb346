import unittest
from unittest.mock import MagicMock, patch

import requests

from domain.errors import Unavailable
from infrastructure.wallet.address_service_http import HttpAddressDeriver


def _response(status_code=200, body=None, invalid_json=False):
    response = MagicMock()
    response.status_code = status_code
    if invalid_json:
        response.json.side_effect = ValueError("bad json")
    else:
        response.json.return_value = body
    return response


class HttpAddressDeriverTests(unittest.TestCase):
    def setUp(self) -> None:
        self.deriver = HttpAddressDeriver("https://wallet.example/api/", timeout=3)

    @patch("infrastructure.wallet.address_service_http.requests.post")
    def test_returns_address(self, post):
        post.return_value = _response(body={"depositAddress": " addr1qxyz "})

        address = self.deriver.derive_address("discord:42")

        self.assertEqual(address, "addr1qxyz")
        post.assert_called_once_with(
            "https://wallet.example/api/generate-address",
            json={"userId": "discord:42"},
            timeout=3,
        )

    @patch("infrastructure.wallet.address_service_http.requests.post")
    def test_network_error_is_unavailable(self, post):
        post.side_effect = requests.exceptions.ConnectionError("refused")
        with self.assertRaises(Unavailable):
            self.deriver.derive_address("discord:42")

    @patch("infrastructure.wallet.address_service_http.requests.post")
    def test_http_error_is_unavailable(self, post):
        post.return_value = _response(status_code=500, body={})
        with self.assertRaises(Unavailable):
            self.deriver.derive_address("discord:42")

    @patch("infrastructure.wallet.address_service_http.requests.post")
    def test_bad_payloads_are_unavailable(self, post):
        for response in (
            _response(invalid_json=True),
            _response(body={"address": "addr1"}),
            _response(body=["addr1"]),
            _response(body={"depositAddress": ""}),
        ):
            post.return_value = response
            with self.assertRaises(Unavailable):
                self.deriver.derive_address("discord:42")


if __name__ == "__main__":
    unittest.main()
