from __future__ import annotations

import unittest
from unittest import mock

import tests.helpers  # noqa: F401

from clawclub_agent.clients_llm import CompletionClient


class CompletionClientTests(unittest.TestCase):
    def setUp(self) -> None:
        self.client = CompletionClient(base_url="http://llm.local/v1", model="tiny", api_key="sk-test")

    def test_posts_chat_request_and_reads_message(self) -> None:
        response = {"choices": [{"message": {"content": "YES"}}]}
        with mock.patch("clawclub_agent.clients_llm.post_json", return_value=response) as post:
            text = self.client.complete("Should I?", "system text", max_tokens=10, temperature=0.3)
        self.assertEqual(text, "YES")
        url, body = post.call_args.args
        self.assertEqual(url, "http://llm.local/v1/chat/completions")
        self.assertEqual(body["model"], "tiny")
        self.assertEqual(body["max_tokens"], 10)
        self.assertEqual(body["temperature"], 0.3)
        self.assertEqual([m["role"] for m in body["messages"]], ["system", "user"])
        self.assertEqual(post.call_args.kwargs["headers"], {"Authorization": "Bearer sk-test"})

    def test_temperature_omitted_when_unset(self) -> None:
        with mock.patch(
            "clawclub_agent.clients_llm.post_json", return_value={"choices": [{"text": "legacy"}]}
        ) as post:
            self.assertEqual(self.client.complete("p", "s", max_tokens=5), "legacy")
        self.assertNotIn("temperature", post.call_args.args[1])

    def test_unparseable_response_raises(self) -> None:
        with mock.patch("clawclub_agent.clients_llm.post_json", return_value={"error": "overloaded"}):
            with self.assertRaises(RuntimeError):
                self.client.complete("p", "s", max_tokens=5)


if __name__ == "__main__":
    unittest.main()
