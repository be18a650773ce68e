"""Tests for configuration loading."""

import json
import pytest
from pathlib import Path

from octosite.errors import ConfigError
from octosite.settings import (
    SiteSettings,
    build_configuration,
    load_configuration,
    parse_ruby_config,
)


class TestRubyConfig:
    """Test cases for the config.rb parser."""

    def test_parses_compass_assignments(self):
        """Test strings, symbols, booleans, nil, integers and arrays."""
        settings = parse_ruby_config(
            'http_path = "/go-aop-php/"\n'
            "sass_dir = 'sass'\n"
            'output_style = :compressed\n'
            'line_comments = false\n'
            'relative_assets = true\n'
            'fonts_dir = nil\n'
            'posts_per_page = 10\n'
            'exclude = ["drafts", \'tmp\']\n'
        )

        assert settings == {
            'http_path': '/go-aop-php/',
            'sass_dir': 'sass',
            'output_style': 'compressed',
            'line_comments': False,
            'relative_assets': True,
            'fonts_dir': None,
            'posts_per_page': 10,
            'exclude': ['drafts', 'tmp'],
        }

    def test_ignores_comments_and_require(self):
        """Test that comments and require lines are skipped."""
        settings = parse_ruby_config(
            "# Require any additional compass plugins here.\n"
            "require 'compass/import-once/activate'\n"
            "\n"
            'css_dir = "public/stylesheets" # published stylesheets\n'
            'title = "Go! # AOP"\n'
        )

        assert settings == {'css_dir': 'public/stylesheets', 'title': 'Go! # AOP'}

    def test_unsupported_statement_names_line(self):
        """Test that Ruby expressions are rejected with their line number."""
        with pytest.raises(ConfigError) as excinfo:
            parse_ruby_config(
                'http_path = "/"\n'
                'output_style = (environment == :production) ? :compressed : :expanded\n',
                'config.rb',
            )

        assert excinfo.value.line == 2
        assert excinfo.value.path == 'config.rb'

    def test_interpolation_is_rejected(self):
        """Test that string interpolation is not evaluated."""
        with pytest.raises(ConfigError, match="interpolation"):
            parse_ruby_config('css_dir = "#{project_path}/css"\n')

    def test_statement_without_assignment(self):
        """Test that a bare statement is an error."""
        with pytest.raises(ConfigError, match="Unsupported statement"):
            parse_ruby_config('add_import_path "vendor"\n')


class TestLoadConfiguration:
    """Test cases for load_configuration."""

    def test_loads_project_config(self, config, project_dir):
        """Test the Compass configuration of the sample project."""
        assert config.http_path == '/go-aop-php/'
        assert config.http_images_path == '/go-aop-php/images'
        assert config.http_fonts_path == '/go-aop-php/fonts'
        assert config.css_dir == 'public/go-aop-php/stylesheets'
        assert config.sass_dir == 'sass'
        assert config.images_dir == 'source/images'
        assert config.fonts_dir == 'source/fonts'
        assert config.line_comments is False
        assert config.output_style == 'compressed'
        assert config.extra == {'project_type': 'stand_alone'}
        assert config.project_root == project_dir.resolve()

    def test_resolved_paths(self, config):
        """Test the derived output locations."""
        root = config.project_root
        assert config.site_root == root / 'public' / 'go-aop-php'
        assert config.css_path == root / 'public' / 'go-aop-php' / 'stylesheets'
        assert config.images_output_path == root / 'public' / 'go-aop-php' / 'images'
        assert config.fonts_output_path == root / 'public' / 'go-aop-php' / 'fonts'
        assert config.layouts_path == root / 'source' / '_layouts'
        assert config.root_url == '/go-aop-php'

    def test_stylesheet_url(self, config):
        """Test that the stylesheet URL is relative to the base path."""
        assert config.as_context()['stylesheet_url'] == '/go-aop-php/stylesheets/screen.css'

    def test_missing_css_dir_is_fatal(self, temp_dir, make_file):
        """Test that a configuration without css_dir raises ConfigError."""
        path = make_file(temp_dir, 'config.rb', 'http_path = "/"\nsass_dir = "sass"\n')

        with pytest.raises(ConfigError, match="css_dir"):
            load_configuration(path)

    def test_invalid_output_style(self, temp_dir, make_file):
        """Test that output_style must be compressed or expanded."""
        path = make_file(temp_dir, 'config.rb',
                         'http_path = "/"\ncss_dir = "css"\nsass_dir = "sass"\noutput_style = :nested\n')

        with pytest.raises(ConfigError, match="output_style"):
            load_configuration(path)

    def test_line_comments_must_be_boolean(self, temp_dir, make_file):
        """Test that line_comments rejects non-boolean values."""
        path = make_file(temp_dir, 'config.rb',
                         'http_path = "/"\ncss_dir = "css"\nsass_dir = "sass"\nline_comments = "no"\n')

        with pytest.raises(ConfigError, match="line_comments"):
            load_configuration(path)

    def test_missing_file(self, temp_dir):
        """Test that a missing configuration file raises ConfigError."""
        with pytest.raises(ConfigError, match="not found"):
            load_configuration(Path(temp_dir) / 'config.rb')

    def test_yaml_config_with_symbol_style(self, temp_dir, make_file):
        """Test YAML configuration, including a Ruby-style symbol value."""
        path = make_file(temp_dir, 'site.yml',
                         'http_path: go-aop-php\ncss_dir: css\nsass_dir: sass\noutput_style: ":expanded"\n')

        config = load_configuration(path)

        assert config.http_path == '/go-aop-php/'
        assert config.output_style == 'expanded'
        assert config.line_comments is True
        assert config.http_images_path == '/go-aop-php/images'

    def test_invalid_yaml_reports_line(self, temp_dir, make_file):
        """Test that YAML syntax errors carry a line number."""
        path = make_file(temp_dir, 'site.yml', 'http_path: /\ncss_dir: [css\nsass_dir: sass\n')

        with pytest.raises(ConfigError) as excinfo:
            load_configuration(path)

        assert excinfo.value.line is not None

    def test_json_config(self, temp_dir, make_file):
        """Test JSON configuration."""
        path = make_file(temp_dir, 'site.json', json.dumps({
            'http_path': '/',
            'css_dir': 'public/css',
            'sass_dir': 'sass',
            'output_style': 'compressed',
        }))

        config = load_configuration(path)

        assert config.http_path == '/'
        assert config.compressed
        assert config.site_root == Path(temp_dir).resolve() / 'public'

    def test_overrides_win(self, project_dir):
        """Test that command-line overrides replace file values."""
        config = load_configuration(project_dir / 'config.rb', {'output_style': 'expanded', 'destination': None})

        assert config.output_style == 'expanded'
        assert config.destination == 'public'

    def test_unsupported_format(self, temp_dir, make_file):
        """Test that unknown file extensions are rejected."""
        path = make_file(temp_dir, 'site.ini', '[site]\n')

        with pytest.raises(ConfigError, match="Unsupported config file format"):
            load_configuration(path)


class TestBuildConfiguration:
    """Test cases for build_configuration validation."""

    def test_missing_required_keys_listed(self, temp_dir):
        """Test that every missing required key is named."""
        with pytest.raises(ConfigError) as excinfo:
            build_configuration({'line_comments': True, 'output_style': 'expanded'}, Path(temp_dir))

        assert 'http_path' in str(excinfo.value)
        assert 'css_dir' in str(excinfo.value)
        assert 'sass_dir' in str(excinfo.value)

    def test_directory_must_be_string(self, temp_dir):
        """Test type checking of directory settings."""
        with pytest.raises(ConfigError, match="css_dir"):
            build_configuration({
                'http_path': '/', 'css_dir': 42, 'sass_dir': 'sass',
                'line_comments': True, 'output_style': 'expanded',
            }, Path(temp_dir))

    def test_configuration_is_frozen(self, config):
        """Test that the configuration cannot be modified."""
        with pytest.raises(AttributeError):
            config.http_path = '/other/'


class TestSiteSettings:
    """Test cases for the SiteSettings loader."""

    def test_find_config_file_order(self, temp_dir, make_file):
        """Test that config.rb is preferred over YAML files."""
        make_file(temp_dir, 'site.yml', 'http_path: /\n')
        make_file(temp_dir, 'config.rb', 'http_path = "/"\n')

        found = SiteSettings(temp_dir).find_config_file()

        assert Path(found).name == 'config.rb'

    def test_find_config_file_none(self, temp_dir):
        """Test that no file is found in an empty directory."""
        assert SiteSettings(temp_dir).find_config_file() is None

    def test_load_settings_without_file(self, temp_dir):
        """Test that loading from an empty directory raises ConfigError."""
        with pytest.raises(ConfigError, match="No configuration file found"):
            SiteSettings(temp_dir).load_settings()

    def test_merge_with_args(self, temp_dir, make_file):
        """Test that None arguments do not override file values."""
        make_file(temp_dir, 'config.rb', 'http_path = "/docs/"\noutput_style = :expanded\n')
        loader = SiteSettings(temp_dir)
        loader.load_settings()

        merged = loader.merge_with_args({'output_style': 'compressed', 'http_path': None})

        assert merged['output_style'] == 'compressed'
        assert merged['http_path'] == '/docs/'

    @pytest.mark.parametrize('file_format', ['rb', 'yml', 'json'])
    def test_sample_config_is_loadable(self, temp_dir, file_format):
        """Test that every generated sample configuration is valid."""
        path = SiteSettings(temp_dir).create_sample_config(file_format)

        config = load_configuration(path)

        assert config.output_style == 'compressed'
        assert config.line_comments is False
        assert config.title == 'My Documentation Site'
