# aliyundrive/constants.py

API_URL_DEFAULT = "https://openapi.alipan.com"

ONLINE_REFRESH_URL_DEFAULT = "https://api.oplist.org/alicloud/renewapi"

# Error codes meaning the access token must be refreshed before retrying.
TOKEN_ERROR_CODES = frozenset({"AccessTokenInvalid", "AccessTokenExpired", "I400JD"})

# Requests per second allowed by the open API, per account.
LIST_RATE_LIMIT = 3.9
LINK_RATE_LIMIT = 0.9
OTHER_RATE_LIMIT = 14.9

# Limiter key used before the account id is known.
UNKNOWN_ACCOUNT = ""

LIST_PAGE_SIZE = 200
DOWNLOAD_URL_EXPIRE_SEC = 14400

BASE_PART_SIZE = 20 * 1024 * 1024
PRE_HASH_SIZE = 1024
RAPID_UPLOAD_MIN_SIZE = 100 * 1024
PROOF_CODE_LENGTH = 8

PUBLIC_UPLOAD_HOST = "https://cn-beijing-data.aliyundrive.net/"
INTERNAL_UPLOAD_HOST = "http://ccp-bj29-bj-1592982087.oss-cn-beijing-internal.aliyuncs.com/"

ACCESS_TOKEN_URI = "/oauth/access_token"
GET_DRIVE_INFO_URI = "/adrive/v1.0/user/getDriveInfo"
LIST_URI = "/adrive/v1.0/openFile/list"
DOWNLOAD_URL_URI = "/adrive/v1.0/openFile/getDownloadUrl"
CREATE_URI = "/adrive/v1.0/openFile/create"
COMPLETE_URI = "/adrive/v1.0/openFile/complete"
COPY_URI = "/adrive/v1.0/openFile/copy"
MOVE_URI = "/adrive/v1.0/openFile/move"
UPDATE_URI = "/adrive/v1.0/openFile/update"
DELETE_URI = "/adrive/v1.0/openFile/delete"
TRASH_URI = "/adrive/v1.0/openFile/recyclebin/trash"
