"""Tests for the front-matter codec and the import-side validator."""

import unittest
from datetime import datetime

import yaml

from converters.front_matter import FrontMatterCodec, clean_list, normalize_key
from importers.front_matter_validator import validate_front_matter
from logger import RunLog


class TestFrontMatterSerialize(unittest.TestCase):
    def setUp(self):
        self.codec = FrontMatterCodec()

    def test_field_order_and_quoting(self):
        meta = {
            'tags': ['a', 'b'],
            'id': 5,
            'title': 'Hello "World"',
            'date': datetime(2024, 1, 2),
        }
        document = self.codec.serialize(meta, 'Body text')

        self.assertEqual(document, '\n'.join([
            '---',
            'title: "Hello \\"World\\""',
            'date: 2024-01-02',
            'id: 5',
            'tags: ["a", "b"]',
            '---',
            '',
            'Body text',
            ''
        ]))

    def test_datetime_with_time(self):
        document = self.codec.serialize({'date': datetime(2024, 1, 2, 13, 5, 9)})
        self.assertIn('date: 2024-01-02 13:05:09', document)

    def test_none_values_omitted(self):
        document = self.codec.serialize({'title': 'T', 'excerpt': None})
        self.assertNotIn('excerpt', document)

    def test_booleans(self):
        document = self.codec.serialize({'stick_post': True})
        self.assertIn('stick_post: yes', document)

    def test_block_list_style(self):
        codec = FrontMatterCodec(list_style='block')
        document = codec.serialize({'tags': ['one', 'two']})
        self.assertIn('tags:\n  - "one"\n  - "two"', document)

    def test_invalid_list_style(self):
        with self.assertRaises(ValueError):
            FrontMatterCodec(list_style='yaml')

    def test_empty_list(self):
        self.assertIn('tags: []', self.codec.serialize({'tags': []}))

    def test_list_values_deduplicated_and_stripped(self):
        self.assertEqual(clean_list([' a ', '<b>a</b>', '', None, 'b']), ['a', 'b'])


class TestFrontMatterParse(unittest.TestCase):
    def setUp(self):
        self.codec = FrontMatterCodec()

    def test_round_trip_of_awkward_values(self):
        meta = {
            'title': '---',
            'excerpt': 'Line one\nLine two with "quotes" and a \\ backslash',
            'tags': ['a, b', 'c'],
        }
        parsed = self.codec.parse(self.codec.serialize(meta, '# Heading\n\nBody'))

        self.assertTrue(parsed.has_front_matter)
        self.assertEqual(parsed.meta['title'], '---')
        self.assertEqual(parsed.meta['excerpt'], meta['excerpt'])
        self.assertEqual(parsed.meta['tags'], ['a, b', 'c'])
        self.assertEqual(parsed.body, '# Heading\n\nBody')

    def test_no_front_matter(self):
        parsed = self.codec.parse('Just a body')
        self.assertFalse(parsed.has_front_matter)
        self.assertEqual(parsed.meta, {})
        self.assertEqual(parsed.body, 'Just a body')

    def test_unclosed_front_matter_is_body(self):
        parsed = self.codec.parse('---\ntitle: x\nno closing line')
        self.assertFalse(parsed.has_front_matter)
        self.assertIn('title: x', parsed.body)

    def test_block_list(self):
        parsed = self.codec.parse('---\ntags:\n  - one\n  - "two"\n---\nBody')
        self.assertEqual(parsed.meta['tags'], ['one', 'two'])

    def test_keys_normalized(self):
        parsed = self.codec.parse('---\nPost Status: draft\n---\n')
        self.assertEqual(parsed.meta['post_status'], 'draft')
        self.assertEqual(normalize_key('Meta-Keywords '), 'meta_keywords')

    def test_lines_without_colon_skipped(self):
        parsed = self.codec.parse('---\ntitle: Kept\njust words\n---\nBody')
        self.assertEqual(parsed.meta, {'title': 'Kept'})

    def test_value_containing_colon(self):
        parsed = self.codec.parse('---\ndate: 2024-01-02 10:11:12\n---\n')
        self.assertEqual(parsed.meta['date'], '2024-01-02 10:11:12')

    def test_values_are_yaml_scalars(self):
        document = self.codec.serialize({
            'title': 'Tab\there, café and "quotes"',
            'excerpt': 'carriage\rreturn',
            'tags': ['x: y', '#hash'],
        })
        lines = document.split('\n')[1:4]

        loaded = yaml.safe_load('\n'.join(lines))

        self.assertEqual(loaded['title'], 'Tab\there, café and "quotes"')
        self.assertEqual(loaded['excerpt'], 'carriage return')
        self.assertEqual(loaded['tags'], ['x: y', '#hash'])
        self.assertIn('café', document)

    def test_plain_scalars_stay_strings(self):
        parsed = self.codec.parse('---\nid: 42\nstick_post: yes\ndate: 2024-01-02\nempty: null\n---\n')
        self.assertEqual(parsed.meta, {'id': '42', 'stick_post': 'yes', 'date': '2024-01-02',
                                       'empty': 'null'})

    def test_single_quoted_and_flow_values(self):
        parsed = self.codec.parse("---\ntitle: 'It''s here'\ntags: [one, 'two, three']\n---\n")
        self.assertEqual(parsed.meta['title'], "It's here")
        self.assertEqual(parsed.meta['tags'], ['one', 'two, three'])

    def test_undecodable_value_kept_raw(self):
        parsed = self.codec.parse('---\ntitle: "Broken\nnote: a: b\nlist: - x\n---\n')
        self.assertEqual(parsed.meta['title'], '"Broken')
        self.assertEqual(parsed.meta['note'], 'a: b')
        self.assertEqual(parsed.meta['list'], '- x')

    def test_bom_and_crlf(self):
        parsed = self.codec.parse('\ufeff---\r\ntitle: "T"\r\n---\r\n\r\nBody\r\n')
        self.assertEqual(parsed.meta['title'], 'T')
        self.assertEqual(parsed.body, 'Body')


class TestFrontMatterValidator(unittest.TestCase):
    def setUp(self):
        self.run_log = RunLog()

    def warnings(self):
        return [line for line in self.run_log.lines if 'WARNING:' in line]

    def test_invalid_status_warns(self):
        result = validate_front_matter({'status': 'archived'}, 'post.md', self.run_log)
        self.assertNotIn('status', result)
        self.assertEqual(len(self.warnings()), 1)
        self.assertIn('Invalid status in front matter for post.md: archived', self.warnings()[0])

    def test_legacy_aliases(self):
        result = validate_front_matter(
            {'post_status': 'published', 'post_excerpt': 'Short'}, 'a.md', self.run_log
        )
        self.assertEqual(result['status'], 'publish')
        self.assertEqual(result['excerpt'], 'Short')

    def test_date_with_offset_becomes_naive_utc(self):
        result = validate_front_matter({'date': '2024-05-01T10:00:00+02:00'}, 'a.md', self.run_log)
        self.assertEqual(result['date'], datetime(2024, 5, 1, 8, 0))

    def test_invalid_date_warns(self):
        result = validate_front_matter({'date': 'not a date'}, 'a.md', self.run_log)
        self.assertNotIn('date', result)
        self.assertEqual(len(self.warnings()), 1)

    def test_id_must_be_positive(self):
        self.assertEqual(validate_front_matter({'id': '42'}, 'a.md', self.run_log)['id'], 42)
        result = validate_front_matter({'id': '0'}, 'a.md', self.run_log)
        self.assertNotIn('id', result)
        self.assertIn('Invalid id', self.warnings()[0])

    def test_comment_status_and_sticky(self):
        result = validate_front_matter(
            {'comment_status': 'maybe', 'stick_post': 'YES'}, 'a.md', self.run_log
        )
        self.assertNotIn('comment_status', result)
        self.assertEqual(result['stick_post'], 'yes')
        self.assertEqual(len(self.warnings()), 1)

    def test_seo_aliases(self):
        result = validate_front_matter(
            {'metadata': 'Describes it', 'keywords': ['alpha', 'beta', 'alpha']},
            'a.md', self.run_log
        )
        self.assertEqual(result['meta_description'], 'Describes it')
        self.assertEqual(result['meta_keywords'], 'alpha, beta')

    def test_pair_lists_require_colon(self):
        result = validate_front_matter(
            {'taxonomy': ['genre:Fiction', 'broken'], 'custom_fields': 'color:blue'},
            'a.md', self.run_log
        )
        self.assertEqual(result['taxonomy'], ['genre:Fiction'])
        self.assertEqual(result['custom_fields'], ['color:blue'])
        self.assertIn('Invalid taxonomy format', self.warnings()[0])

    def test_markup_stripped_and_slug_sanitized(self):
        result = validate_front_matter(
            {'title': '<b>Hi</b> there', 'slug': 'Hello World!'}, 'a.md', self.run_log
        )
        self.assertEqual(result['title'], 'Hi there')
        self.assertEqual(result['slug'], 'hello-world')

    def test_menu_order(self):
        self.assertEqual(validate_front_matter({'menu_order': '3'}, 'a.md')['menu_order'], 3)
        result = validate_front_matter({'menu_order': 'first'}, 'a.md', self.run_log)
        self.assertNotIn('menu_order', result)


if __name__ == '__main__':
    unittest.main()
