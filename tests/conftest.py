"""
Pytest configuration and fixtures for testing the SUUMO importer.
"""
import io
import os

import boto3
import pytest
from moto import mock_aws
from PIL import Image

from suumo_import.config import load_config
from suumo_import.dynamodb_utils import PropertyStore

REGION = 'ap-northeast-1'
TABLE_NAME = 'test-suumo-properties'
BUCKET_NAME = 'test-suumo-photos'


def room_row(floor='3階', rent='6.9万円', admin='5000円', deposit='6.9万円', gratuity='-',
             madori='1LDK', menseki='25.5m<sup>2</sup>', href='/chintai/jnc_000012345678/?bc=100',
             imgs=None, img_src=None):
    """One <tbody> of a SUUMO room table"""
    if imgs is not None:
        thumbnail = (
            f'<div class="casssetteitem_other-thumbnail js-view_gallery_images" data-imgs="{",".join(imgs)}">'
            f'<img class="casssetteitem_other-thumbnail-img" src="data:image/gif;base64,R0lGODlhAQABAIAAAAAAAP///yH5BAEAAAAALAAAAAABAAEAAAIBRAA7">'
            '</div>'
        )
    elif img_src is not None:
        thumbnail = f'<div><img rel="{img_src}" src="data:image/gif;base64,R0lGOD"></div>'
    else:
        thumbnail = ''
    link = f'<a class="js-cassette_link_href cassetteitem_other-linktext" href="{href}">詳細を見る</a>' if href else ''
    return f"""
      <tbody>
        <tr class="js-cassette_link">
          <td class="cassetteitem_other-checkbox"><input type="checkbox" value="1"></td>
          <td>{thumbnail}</td>
          <td>{floor}</td>
          <td>
            <ul>
              <li><span class="cassetteitem_price cassetteitem_price--rent"><span class="cassetteitem_other-emphasis ui-text--bold">{rent}</span></span></li>
              <li><span class="cassetteitem_price cassetteitem_price--administration">{admin}</span></li>
            </ul>
          </td>
          <td>
            <ul>
              <li><span class="cassetteitem_price cassetteitem_price--deposit">{deposit}</span></li>
              <li><span class="cassetteitem_price cassetteitem_price--gratuity">{gratuity}</span></li>
            </ul>
          </td>
          <td>
            <ul>
              <li><span class="cassetteitem_madori">{madori}</span></li>
              <li><span class="cassetteitem_menseki">{menseki}</span></li>
            </ul>
          </td>
          <td><ul class="cassetteitem_taglist"><li>ネット使用料無料</li></ul></td>
          <td><span class="cassetteitem_other-fav">お気に入り</span></td>
          <td class="ui-text--midium ui-text--bold">{link}</td>
        </tr>
      </tbody>"""


def cassette(name='パークハイツ渋谷', address='東京都渋谷区渋谷２', label='賃貸マンション',
             access=('JR山手線/渋谷駅 歩5分', '東京メトロ銀座線/渋谷駅 歩7分'),
             details=('築12年', '10階建', '鉄筋コンクリート'),
             image='https://img01.suumo.com/front/gazo/fr/bukken/001/100001_gaikan.jpg',
             rooms=None):
    """One .cassetteitem listing block"""
    rooms = [room_row()] if rooms is None else rooms
    access_html = ''.join(f'<div class="cassetteitem_detail-text">{a}</div>' for a in access)
    details_html = ''.join(f'<div>{d}</div>' for d in details)
    image_html = f'<img class="js-noContextMenu js-linkImage" rel="{image}" src="data:image/gif;base64,R0lGOD" alt="">' if image else ''
    name_html = f'<div class="cassetteitem_content-title">{name}</div>' if name is not None else ''
    return f"""
  <div class="cassetteitem">
    <div class="cassetteitem-detail">
      <div class="cassetteitem-detail-object">
        <div class="cassetteitem_object">
          <div class="cassetteitem_object-item">{image_html}</div>
        </div>
      </div>
      <div class="cassetteitem-detail-body">
        <div class="cassetteitem_content">
          <div class="cassetteitem_content-label"><span class="ui-pct ui-pct--util1">{label}</span></div>
          {name_html}
        </div>
        <div class="cassetteitem_content-body">
          <ul class="cassetteitem_detail">
            <li class="cassetteitem_detail-col1">{address}</li>
            <li class="cassetteitem_detail-col2">{access_html}</li>
            <li class="cassetteitem_detail-col3">{details_html}</li>
          </ul>
        </div>
      </div>
    </div>
    <div class="cassetteitem-item">
      <table class="cassetteitem_other">
        <thead><tr><th>&nbsp;</th><th>間取り図</th><th>階</th><th>賃料/管理費</th><th>敷金/礼金</th><th>間取り/専有面積</th><th>&nbsp;</th><th>&nbsp;</th><th>&nbsp;</th></tr></thead>
        {''.join(rooms)}
      </table>
    </div>
  </div>"""


def search_page(cassettes, pagination='', hit='1,234'):
    """Full search-result page around the given listing blocks"""
    hit_html = f'<div class="paginate_set-hit">{hit}<span>件</span></div>' if hit is not None else ''
    return f"""<!DOCTYPE html>
<html lang="ja">
<head><meta charset="UTF-8"><title>賃貸物件一覧</title></head>
<body>
  {hit_html}
  <div id="js-bukkenList">
  {''.join(cassettes)}
  </div>
  <div class="pagination pagination_set-nav">{pagination}</div>
</body>
</html>"""


def next_link(href='/jj/chintai/ichiran/FR301FC001/?ar=030&amp;bs=040&amp;ta=13&amp;sc=13113&amp;page=2'):
    return f'<p class="pagination-parts"><a href="{href}">次へ</a></p>'


def prev_link(href='/jj/chintai/ichiran/FR301FC001/?ar=030&amp;bs=040&amp;ta=13&amp;sc=13113&amp;page=1'):
    return f'<p class="pagination-parts"><a href="{href}">前へ</a></p>'


@pytest.fixture
def html():
    """Builders for SUUMO search-result markup."""
    class Builders:
        pass

    builders = Builders()
    builders.room_row = room_row
    builders.cassette = cassette
    builders.search_page = search_page
    builders.next_link = next_link
    builders.prev_link = prev_link
    return builders


@pytest.fixture
def aws_credentials(monkeypatch):
    """Mocked AWS Credentials for moto."""
    monkeypatch.setenv('AWS_ACCESS_KEY_ID', 'testing')
    monkeypatch.setenv('AWS_SECRET_ACCESS_KEY', 'testing')
    monkeypatch.setenv('AWS_SECURITY_TOKEN', 'testing')
    monkeypatch.setenv('AWS_SESSION_TOKEN', 'testing')
    monkeypatch.setenv('AWS_DEFAULT_REGION', REGION)


@pytest.fixture
def config():
    """Config with no delays, pointed at the mocked table and bucket."""
    return load_config(
        environ={},
        timeout=5.0,
        image_timeout=5.0,
        default_rate_limit=0.0,
        image_delay=0.0,
        aws_region=REGION,
        dynamodb_table=TABLE_NAME,
        photo_bucket=BUCKET_NAME,
    )


@pytest.fixture
def aws(aws_credentials):
    with mock_aws():
        yield


@pytest.fixture
def dynamodb_table(aws):
    """Mocked single-table layout used by PropertyStore."""
    dynamodb = boto3.resource('dynamodb', region_name=REGION)
    table = dynamodb.create_table(
        TableName=TABLE_NAME,
        KeySchema=[
            {'AttributeName': 'building_id', 'KeyType': 'HASH'},
            {'AttributeName': 'sort_key', 'KeyType': 'RANGE'},
        ],
        AttributeDefinitions=[
            {'AttributeName': 'building_id', 'AttributeType': 'S'},
            {'AttributeName': 'sort_key', 'AttributeType': 'S'},
        ],
        BillingMode='PAY_PER_REQUEST',
    )
    yield table


@pytest.fixture
def s3_client(aws):
    s3 = boto3.client('s3', region_name=REGION)
    s3.create_bucket(Bucket=BUCKET_NAME, CreateBucketConfiguration={'LocationConstraint': REGION})
    yield s3


@pytest.fixture
def store(dynamodb_table, s3_client):
    return PropertyStore(dynamodb_table, s3_client=s3_client, bucket=BUCKET_NAME)


@pytest.fixture
def png_bytes():
    """A tiny valid PNG."""
    buffer = io.BytesIO()
    Image.new('RGB', (4, 4), color=(200, 120, 40)).save(buffer, format='PNG')
    return buffer.getvalue()


@pytest.fixture
def jpeg_bytes():
    buffer = io.BytesIO()
    Image.new('RGB', (4, 4), color=(10, 20, 30)).save(buffer, format='JPEG')
    return buffer.getvalue()


@pytest.fixture
def station_master_file(tmp_path):
    path = tmp_path / 'stations.yaml'
    path.write_text(
        """
lines:
  - id: 1
    name: JR山手線
    stations:
      - {id: 101, name: 渋谷}
      - {id: 102, name: 原宿}
  - id: 2
    name: 東京メトロ銀座線
    stations:
      - {id: 201, name: 渋谷}
      - {id: 202, name: 表参道}
  - id: 3
    name: 京王井の頭線
    stations:
      - {id: 301, name: 神泉}
      - {id: 302, name: 渋谷}
""",
        encoding='utf-8',
    )
    return path


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch):
    """Keep host SUUMO_* settings out of tests."""
    for key in list(os.environ):
        if key.startswith('SUUMO_') or key in ('DYNAMODB_TABLE', 'PHOTO_BUCKET', 'GEOCODE_FUNCTION'):
            monkeypatch.delenv(key, raising=False)
