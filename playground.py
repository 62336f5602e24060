#%% セル1：パラメータ
from pathlib import Path
IN  = Path("data/raw/crash_data.xlsx")
OUT = Path("data/processed/speed_by_district.csv")
FIG = Path("artifacts/age_hist.png")

#%% セル2：読み込み→クリーニング（"x" は欠損、#. の列名は no. に）
from crash_eda.columns import Column
from crash_eda.etl import DataLoader, Cleaner, Plotter, add_alcohol_in_system, bucketize, count, group_summarise, write_csv

df = DataLoader(sheet=0).load(IN)
df_clean = Cleaner().clean(df)
print(df_clean.head())

#%% セル3：60歳より上は何人？
print("over 60:", count(df_clean, lambda d: d["Age"] > 60))

#%% セル4：地区ごとの速度（平均・標準偏差）を CSV に
speed = group_summarise(df_clean, Column.DISTRICT, {
    "mean_speed": (Column.SPEED, "mean"),
    "sd_speed": (Column.SPEED, "sd"),
})
write_csv(speed, OUT)
print(speed)

#%% セル5：年齢帯ごとの血中アルコール
by_age = group_summarise(bucketize(df_clean, Column.AGE), Column.AGE_RANGE, {
    "n": (Column.AGE, "count"),
    "mean_blood_alcohol": (Column.BLOOD_ALCOHOL, "mean"),
})
print(by_age)

#%% セル6：alcohol_in_system（欠損は欠損のまま）
flagged = add_alcohol_in_system(df_clean)
print(flagged["alcohol_in_system"].value_counts(dropna=False))

#%% セル7：図
Plotter().plot(df_clean, FIG)

# %%
