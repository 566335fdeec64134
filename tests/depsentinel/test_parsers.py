"""Tests for manifest parsers and the parser registry."""

from __future__ import annotations

import json
from unittest.mock import MagicMock, patch

from depsentinel.engines.dependency_scanner.models import ComponentType, Ecosystem
from depsentinel.engines.dependency_scanner.parsers.ant_build import AntBuildParser
from depsentinel.engines.dependency_scanner.parsers.dockerfile import (
    DockerfileParser,
    runtime_from_image,
    split_image,
    tokenize,
)
from depsentinel.engines.dependency_scanner.parsers.gradle_build import (
    GradleBuildParser,
    clean_gradle_version,
    resolve_variables,
    strip_comments,
)
from depsentinel.engines.dependency_scanner.parsers.maven_pom import (
    MavenPomParser,
    resolve_props,
)
from depsentinel.engines.dependency_scanner.parsers.package_json import (
    PackageJsonParser,
    clean_version,
)
from depsentinel.engines.dependency_scanner.parsers.perl import PerlManifestParser
from depsentinel.engines.dependency_scanner.parsers.runtime_files import (
    JavaVersionParser,
    NodeVersionParser,
)
from depsentinel.engines.dependency_scanner.registry import (
    PARSER_REGISTRY,
    get_parser,
    parse_manifest,
)


def _by_name(result):
    return {c.name: c for c in result.components}


# ── Registry ─────────────────────────────────────────────────────────────


class TestRegistry:
    def test_every_ecosystem_has_a_parser(self):
        assert set(PARSER_REGISTRY) == set(Ecosystem)

    def test_get_parser_returns_matching_ecosystem(self):
        for ecosystem in Ecosystem:
            assert get_parser(ecosystem).ecosystem == ecosystem

    def test_parse_error_becomes_result_error(self):
        result = parse_manifest(Ecosystem.NPM, "{not json")
        assert result.components == []
        assert "invalid JSON" in result.error

    def test_byte_order_mark_is_ignored(self):
        manifest = "\ufeff" + json.dumps({"dependencies": {"left-pad": "^1.0.0"}})
        result = parse_manifest(Ecosystem.NPM, manifest)
        assert result.error is None
        assert [(c.name, c.version) for c in result.components] == [("left-pad", "1.0.0")]

    def test_crashing_parser_is_contained(self):
        broken = MagicMock()
        broken.parse.side_effect = RuntimeError("boom")
        with patch.dict(PARSER_REGISTRY, {Ecosystem.NPM: broken}):
            result = parse_manifest(Ecosystem.NPM, "{}")
        assert result.error == "RuntimeError: boom"
        assert result.components == []


# ── package.json ─────────────────────────────────────────────────────────


class TestPackageJson:
    MANIFEST = json.dumps(
        {
            "name": "web",
            "engines": {"node": ">=16.0.0"},
            "dependencies": {"express": "^4.18.2", "left-pad": "~1.3.0"},
            "devDependencies": {"jest": "29.7.0"},
            "peerDependencies": {"react": ">=18 <19"},
        }
    )

    def test_groups_and_versions(self):
        comps = _by_name(PackageJsonParser().parse(self.MANIFEST))
        assert comps["express"].version == "4.18.2"
        assert comps["express"].type == ComponentType.DEPENDENCY
        assert comps["left-pad"].version == "1.3.0"
        assert comps["jest"].type == ComponentType.DEV_DEPENDENCY
        assert comps["react"].version == "18"
        assert comps["react"].scope == "peer"

    def test_engines_node_sets_runtime(self):
        result = PackageJsonParser().parse(self.MANIFEST)
        assert result.runtime == "node"
        assert result.runtime_version == "16.0.0"
        assert result.runtime_eol is True

    def test_group_caps(self):
        deps = {f"pkg-{i}": "1.0.0" for i in range(60)}
        dev = {f"dev-{i}": "1.0.0" for i in range(40)}
        result = PackageJsonParser().parse(json.dumps({"dependencies": deps, "devDependencies": dev}))
        types = [c.type for c in result.components]
        assert types.count(ComponentType.DEPENDENCY) == 50
        assert types.count(ComponentType.DEV_DEPENDENCY) == 30

    def test_non_string_version_is_unknown(self):
        result = PackageJsonParser().parse(json.dumps({"dependencies": {"odd": {"x": 1}}}))
        assert result.components[0].version == "unknown"

    def test_top_level_array_is_error(self):
        assert parse_manifest(Ecosystem.NPM, "[]").error

    def test_clean_version(self):
        assert clean_version("^1.0.0") == "1.0.0"
        assert clean_version(">=2.1 <3") == "2.1"
        assert clean_version("v3.2.1") == "3.2.1"
        assert clean_version("latest") == "latest"


# ── pom.xml ──────────────────────────────────────────────────────────────

POM = """<?xml version="1.0"?>
<project xmlns="http://maven.apache.org/POM/4.0.0">
  <groupId>com.acme</groupId>
  <artifactId>app</artifactId>
  <version>1.2.0</version>
  <properties>
    <spring.version>5.3.20</spring.version>
    <lib.version>${spring.version}</lib.version>
    <java.version>11</java.version>
  </properties>
  <dependencies>
    <dependency>
      <groupId>org.springframework</groupId>
      <artifactId>spring-core</artifactId>
      <version>${lib.version}</version>
    </dependency>
    <dependency>
      <groupId>junit</groupId>
      <artifactId>junit</artifactId>
      <version>4.13.2</version>
      <scope>test</scope>
    </dependency>
    <dependency>
      <groupId>org.apache.axis2</groupId>
      <artifactId>axis2-kernel</artifactId>
      <version>1.7.9</version>
    </dependency>
    <dependency>
      <groupId>com.acme</groupId>
      <artifactId>common</artifactId>
      <version>${project.version}</version>
    </dependency>
    <dependency>
      <groupId>org.example</groupId>
      <artifactId>mystery</artifactId>
      <version>${missing.version}</version>
    </dependency>
  </dependencies>
  <dependencyManagement>
    <dependencies>
      <dependency>
        <groupId>org.springframework.boot</groupId>
        <artifactId>spring-boot-dependencies</artifactId>
        <version>2.7.0</version>
      </dependency>
    </dependencies>
  </dependencyManagement>
  <build>
    <plugins>
      <plugin>
        <artifactId>maven-compiler-plugin</artifactId>
        <version>3.11.0</version>
        <configuration><release>17</release></configuration>
      </plugin>
    </plugins>
  </build>
</project>
"""


class TestMavenPom:
    def test_dependencies_and_scopes(self):
        comps = _by_name(MavenPomParser().parse(POM))
        assert comps["org.springframework:spring-core"].version == "5.3.20"
        assert comps["junit:junit"].type == ComponentType.DEV_DEPENDENCY
        assert comps["com.acme:common"].version == "1.2.0"

    def test_unresolved_property_kept_literal(self):
        comps = _by_name(MavenPomParser().parse(POM))
        assert comps["org.example:mystery"].version == "${missing.version}"

    def test_management_and_plugins_are_build_deps(self):
        comps = _by_name(MavenPomParser().parse(POM))
        bom = comps["org.springframework.boot:spring-boot-dependencies"]
        assert bom.type == ComponentType.BUILD_DEPENDENCY
        assert bom.scope == "management"
        plugin = comps["org.apache.maven.plugins:maven-compiler-plugin"]
        assert plugin.scope == "plugin"
        assert plugin.version == "3.11.0"

    def test_denylist_flag(self):
        comps = _by_name(MavenPomParser().parse(POM))
        assert comps["org.apache.axis2:axis2-kernel"].flag_reason.startswith("Apache Axis2")
        assert comps["junit:junit"].flag_reason is None

    def test_compiler_plugin_wins_over_property(self):
        result = MavenPomParser().parse(POM)
        assert result.runtime == "java"
        assert result.runtime_version == "17"
        assert result.runtime_eol is False

    def test_pom_without_namespace(self):
        pom = (
            "<project><properties><maven.compiler.source>1.7</maven.compiler.source></properties>"
            "<dependencies><dependency><groupId>g</groupId><artifactId>a</artifactId>"
            "</dependency></dependencies></project>"
        )
        result = MavenPomParser().parse(pom)
        assert result.components[0].name == "g:a"
        assert result.components[0].version == "unknown"
        assert result.runtime_version == "1.7"
        assert result.runtime_eol is True

    def test_wrong_root_is_error(self):
        assert parse_manifest(Ecosystem.MAVEN, "<settings/>").error

    def test_invalid_xml_is_error(self):
        assert "invalid XML" in parse_manifest(Ecosystem.MAVEN, "<project>").error

    def test_resolve_props_nested(self):
        props = {"a": "${b}", "b": "${c}", "c": "3.0"}
        assert resolve_props("${a}", props) == "3.0"
        assert resolve_props("x-${nope}", props) == "x-${nope}"


# ── build.gradle ─────────────────────────────────────────────────────────

GRADLE = """
ext {
    springVersion = '5.3.0'
}
def jacksonVersion = "2.15.2"

java {
    toolchain {
        languageVersion.set(JavaLanguageVersion.of(17))
    }
}

dependencies {
    implementation "org.springframework:spring-core:${springVersion}"
    implementation("com.fasterxml.jackson.core:jackson-databind:$jacksonVersion")
    testImplementation 'junit:junit:4.13.2'
    compileOnly group: 'org.projectlombok', name: 'lombok', version: '1.18.30'
    annotationProcessor 'org.projectlombok:lombok:1.18.30'
    implementation 'com.example:ranged:[1.0,2.0)'
    implementation "org.foo:bar:${rootProject.ext.barVersion}"
    api project(':core')
}
"""


class TestGradleBuild:
    def test_declaration_order_and_count(self):
        result = GradleBuildParser().parse(GRADLE)
        assert [c.name for c in result.components] == [
            "org.springframework:spring-core",
            "com.fasterxml.jackson.core:jackson-databind",
            "junit:junit",
            "org.projectlombok:lombok",
            "org.projectlombok:lombok",
            "com.example:ranged",
            "org.foo:bar",
        ]

    def test_variables_resolved(self):
        comps = GradleBuildParser().parse(GRADLE).components
        assert comps[0].version == "5.3.0"
        assert comps[1].version == "2.15.2"

    def test_unresolved_variable_stays_literal(self):
        comps = GradleBuildParser().parse(GRADLE).components
        assert comps[6].version == "${rootProject.ext.barVersion}"

    def test_configuration_types(self):
        comps = GradleBuildParser().parse(GRADLE).components
        assert comps[2].type == ComponentType.DEV_DEPENDENCY
        assert comps[3].scope == "compileOnly"
        assert comps[3].type == ComponentType.DEPENDENCY
        assert comps[4].type == ComponentType.BUILD_DEPENDENCY

    def test_range_version(self):
        assert GradleBuildParser().parse(GRADLE).components[5].version == "1.0"

    def test_java_toolchain(self):
        result = GradleBuildParser().parse(GRADLE)
        assert result.runtime_version == "17"

    def test_source_compatibility_legacy_format(self):
        result = GradleBuildParser().parse("sourceCompatibility = '1.8'\n")
        assert result.runtime_version == "8"
        assert result.runtime_eol is False

    def test_kotlin_dsl_version_enum(self):
        result = GradleBuildParser().parse(
            'java { sourceCompatibility = JavaVersion.VERSION_11 }\n'
            'dependencies { implementation("io.ktor:ktor-server-core:2.3.4") }\n'
        )
        assert result.components[0].version == "2.3.4"
        assert result.runtime_version == "11"

    def test_line_comments_are_skipped(self):
        result = GradleBuildParser().parse(
            "dependencies {\n"
            "    implementation 'org.slf4j:slf4j-api:2.0.9'\n"
            "    // implementation 'org.apache.axis2:axis2-kernel:1.7.9'\n"
            "    runtimeOnly 'ch.qos.logback:logback-classic:1.4.11' // pinned\n"
            "}\n"
        )
        assert [c.name for c in result.components] == [
            "org.slf4j:slf4j-api",
            "ch.qos.logback:logback-classic",
        ]
        assert all(c.flag_reason is None for c in result.components)

    def test_block_comments_are_skipped(self):
        result = GradleBuildParser().parse(
            "dependencies {\n"
            "    implementation 'org.slf4j:slf4j-api:2.0.9'\n"
            "    /* testImplementation 'junit:junit:4.13.2'\n"
            "       compileOnly group: 'org.projectlombok', name: 'lombok', version: '1.18.30' */\n"
            "}\n"
            "/* sourceCompatibility = '1.6' */\n"
        )
        assert [c.name for c in result.components] == ["org.slf4j:slf4j-api"]
        assert result.runtime_version is None

    def test_slashes_inside_strings_are_not_comments(self):
        stripped = strip_comments(
            'maven { url "https://repo.example.com/releases" }\n'
            "implementation 'com.acme:lib:1.0' // trailing\n"
        )
        assert 'url "https://repo.example.com/releases"' in stripped
        assert "trailing" not in stripped
        assert stripped.count("\n") == 2

    def test_helpers(self):
        assert clean_gradle_version("(,2.0]") == ""
        assert clean_gradle_version("1.2.3") == "1.2.3"
        assert resolve_variables("${versions.spring}", {"spring": "6.0"}) == "6.0"


# ── Dockerfile ───────────────────────────────────────────────────────────

DOCKERFILE = """# syntax=docker/dockerfile:1
FROM --platform=linux/amd64 node:18-alpine AS build
RUN npm ci \\
    && npm run build
FROM nginx:1.25
"""


class TestDockerfile:
    def test_first_from_is_base_image(self):
        result = DockerfileParser().parse(DOCKERFILE)
        assert result.base_image == "node:18-alpine"
        assert result.runtime == "node"
        assert result.runtime_version == "18"
        assert result.runtime_eol is True
        comp = result.components[0]
        assert (comp.name, comp.version, comp.scope) == ("node", "18-alpine", "base-image")

    def test_tokenize_joins_continuations(self):
        instructions = tokenize(DOCKERFILE)
        assert [i.name for i in instructions] == ["FROM", "RUN", "FROM"]
        assert instructions[1].args == "npm ci && npm run build"

    def test_no_from(self):
        result = DockerfileParser().parse("# nothing here\n")
        assert result.components == []
        assert result.base_image is None

    def test_split_image(self):
        assert split_image("registry.example.com:5000/team/app") == (
            "registry.example.com:5000/team/app",
            "latest",
        )
        assert split_image("eclipse-temurin:17-jre@sha256:abc") == ("eclipse-temurin", "17-jre")
        assert split_image("python") == ("python", "latest")

    def test_runtime_from_image(self):
        assert runtime_from_image("eclipse-temurin", "17-jre") == ("java", "17")
        assert runtime_from_image("library/python", "3.11-slim-bookworm") == ("python", "3.11")
        assert runtime_from_image("golang", "latest") == ("go", None)
        assert runtime_from_image("acme/custom", "1.0") == (None, None)


# ── Perl ─────────────────────────────────────────────────────────────────

CPANFILE = """requires 'perl', '5.010';
requires 'Mojolicious', '9.0';
requires 'DBI';
recommends 'JSON::XS', '>= 4.0';
# requires 'Commented::Out';

on 'test' => sub {
    requires 'Test::More', '0.98';
};

on develop => sub {
    requires 'Perl::Critic';
};
"""

MAKEFILE_PL = """use ExtUtils::MakeMaker;
WriteMakefile(
    NAME             => 'My::App',
    MIN_PERL_VERSION => '5.008',
    PREREQ_PM        => {
        'LWP::UserAgent' => '6.0',
        'JSON'           => 0,
    },
    TEST_REQUIRES    => { 'Test::More' => '0.88' },
);
"""


class TestPerl:
    def test_cpanfile(self):
        result = PerlManifestParser().parse(CPANFILE)
        comps = _by_name(result)
        assert result.runtime == "perl"
        assert result.runtime_version == "5.010"
        assert "perl" not in comps
        assert "Commented::Out" not in comps
        assert comps["Mojolicious"].version == "9.0"
        assert comps["DBI"].version == "unknown"
        assert comps["JSON::XS"].version == "4.0"
        assert comps["JSON::XS"].scope == "recommends"

    def test_cpanfile_phases(self):
        comps = _by_name(PerlManifestParser().parse(CPANFILE))
        assert comps["Test::More"].type == ComponentType.DEV_DEPENDENCY
        assert comps["Test::More"].scope == "test"
        assert comps["Perl::Critic"].scope == "develop"
        assert comps["Mojolicious"].type == ComponentType.DEPENDENCY

    def test_makefile_pl(self):
        result = PerlManifestParser().parse(MAKEFILE_PL)
        comps = _by_name(result)
        assert result.runtime_version == "5.008"
        assert comps["LWP::UserAgent"].version == "6.0"
        assert comps["JSON"].version == "unknown"
        assert comps["Test::More"].type == ComponentType.DEV_DEPENDENCY


# ── Ant ──────────────────────────────────────────────────────────────────

BUILD_XML = """<project name="legacy" default="compile">
  <property name="commons-io.version" value="2.11.0"/>
  <property name="src.dir" value="src"/>
  <property name="axis2-version" value="1.6.2"/>
  <target name="compile">
    <javac srcdir="${src.dir}" source="1.8" target="1.8"/>
  </target>
</project>
"""


class TestAntBuild:
    def test_version_properties(self):
        comps = _by_name(AntBuildParser().parse(BUILD_XML))
        assert set(comps) == {"commons-io", "axis2"}
        assert comps["commons-io"].version == "2.11.0"
        assert comps["commons-io"].type == ComponentType.BUILD_DEPENDENCY
        assert comps["axis2"].flag_reason is not None

    def test_javac_target(self):
        result = AntBuildParser().parse(BUILD_XML)
        assert result.runtime == "java"
        assert result.runtime_version == "1.8"
        assert result.runtime_eol is False


# ── Runtime pin files ────────────────────────────────────────────────────


class TestRuntimeFiles:
    def test_nvmrc_strips_v(self):
        result = NodeVersionParser().parse("v20.11.1\n")
        assert result.runtime_version == "20.11.1"
        assert result.runtime_eol is True

    def test_nvmrc_alias(self):
        result = NodeVersionParser().parse("lts/iron\n")
        assert result.runtime_version == "lts/iron"
        assert result.runtime_eol is False

    def test_empty_file(self):
        assert NodeVersionParser().parse("\n").runtime_version is None

    def test_java_version(self):
        assert JavaVersionParser().parse("17\n").runtime_eol is False
        assert JavaVersionParser().parse("15\n").runtime_eol is True
