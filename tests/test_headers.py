import unittest

from hlsedge.services.headers import (
    HLS_ACCEPT, base_headers, build_outbound_headers, cors_headers, match_streaming_origin, origin_overrides,
)
from hlsedge.utils.classify import TargetKind

SONY_URL = "https://sonydaimenew.akamaized.net/hls/live/index.m3u8"


class CorsHeadersTests(unittest.TestCase):

    def test_permissive_headers(self):
        headers = cors_headers()
        self.assertEqual(headers['Access-Control-Allow-Origin'], '*')
        self.assertEqual(headers['Access-Control-Allow-Methods'], 'GET, POST, OPTIONS')
        self.assertEqual(headers['Access-Control-Allow-Headers'], '*')
        self.assertEqual(headers['Access-Control-Expose-Headers'], '*')
        self.assertEqual(headers['Access-Control-Max-Age'], '86400')

    def test_each_call_returns_a_new_mapping(self):
        first = cors_headers()
        first['Access-Control-Allow-Origin'] = 'https://evil.example'
        self.assertEqual(cors_headers()['Access-Control-Allow-Origin'], '*')


class OriginOverrideTests(unittest.TestCase):

    def test_builtin_provider_match(self):
        self.assertEqual(match_streaming_origin(SONY_URL), 'https://www.sonyliv.com')
        self.assertIsNone(match_streaming_origin("https://example.com/index.m3u8"))

    def test_match_uses_host_not_path(self):
        self.assertIsNone(match_streaming_origin("https://example.com/sonyliv/index.m3u8"))

    def test_overrides_for_provider(self):
        inbound = {'CF-Connecting-IP': '203.0.113.9', 'CF-IPCountry': 'IN'}
        overrides = origin_overrides(SONY_URL, inbound)
        self.assertEqual(overrides['Origin'], 'https://www.sonyliv.com')
        self.assertEqual(overrides['Referer'], 'https://www.sonyliv.com/')
        self.assertEqual(overrides['Host'], 'sonydaimenew.akamaized.net')
        self.assertEqual(overrides['Accept'], HLS_ACCEPT)
        self.assertEqual(overrides['X-Forwarded-For'], '203.0.113.9')
        self.assertEqual(overrides['CF-IPCountry'], 'IN')

    def test_missing_client_signals_are_empty_not_fabricated(self):
        overrides = origin_overrides(SONY_URL, {})
        self.assertEqual(overrides['X-Forwarded-For'], '')
        self.assertEqual(overrides['CF-IPCountry'], '')

    def test_no_overrides_for_unknown_host(self):
        self.assertEqual(origin_overrides("https://example.com/a.m3u8", {'CF-Connecting-IP': '1.2.3.4'}), {})

    def test_custom_rules(self):
        rules = [{'match': ('mycdn',), 'origin': 'https://watch.example'}]
        overrides = origin_overrides("https://edge.mycdn.net/a.ts", {}, rules)
        self.assertEqual(overrides['Origin'], 'https://watch.example')


class BuildOutboundHeadersTests(unittest.TestCase):

    def test_base_profile_for_plain_target(self):
        headers = build_outbound_headers("https://example.com/a.m3u8", TargetKind.MANIFEST, {})
        self.assertEqual(headers, base_headers())
        self.assertIn('Chrome', headers['User-Agent'])
        self.assertEqual(headers['Accept'], '*/*')
        self.assertNotIn('Origin', headers)

    def test_override_wins_over_base(self):
        headers = build_outbound_headers(SONY_URL, TargetKind.MANIFEST, {})
        self.assertEqual(headers['Accept'], HLS_ACCEPT)
        self.assertEqual(headers['Origin'], 'https://www.sonyliv.com')
        self.assertEqual(headers['User-Agent'], base_headers()['User-Agent'])

    def test_range_passes_through_for_segments_only(self):
        inbound = {'Range': 'bytes=0-99'}
        segment = build_outbound_headers("https://example.com/a.ts", TargetKind.SEGMENT, inbound)
        manifest = build_outbound_headers("https://example.com/a.m3u8", TargetKind.MANIFEST, inbound)
        self.assertEqual(segment['Range'], 'bytes=0-99')
        self.assertNotIn('Range', manifest)
